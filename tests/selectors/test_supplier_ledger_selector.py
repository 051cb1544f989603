"""
SupplierLedgerSelector: balances, summaries, statements and the running
balance check.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from materials_kernel.domain.dtos import PaymentStatus, SupplierTransactionType
from materials_kernel.exceptions import LedgerIntegrityError
from materials_kernel.models.supplier_ledger import SupplierLedgerEntryModel
from materials_kernel.selectors.supplier_ledger_selector import SupplierLedgerSelector
from materials_kernel.services.supplier_ledger import SupplierLedgerService


@pytest.fixture
def posted_ledger(session, catalog, actor_id, deterministic_clock):
    """Two purchases and a payment spread over three weeks of January."""
    ledger = SupplierLedgerService(session, deterministic_clock)
    ledger.post_purchase(
        catalog.supplier.id, uuid4(), "PO000001", Decimal("1000"), actor_id,
        due_date=date(2024, 1, 20),
    )
    deterministic_clock.advance_days(7)
    ledger.post_purchase(
        catalog.supplier.id, uuid4(), "PO000002", Decimal("500"), actor_id,
        due_date=date(2024, 2, 28),
    )
    deterministic_clock.advance_days(7)
    ledger.record_payment(catalog.supplier.id, Decimal("300"), actor_id)
    session.commit()
    return catalog.supplier.id


class TestSupplierLedgerSelector:

    def test_balance(self, session, posted_ledger, catalog):
        selector = SupplierLedgerSelector(session)
        assert selector.balance(posted_ledger) == Decimal("1200")
        assert selector.balance(catalog.other_supplier.id) == Decimal("0")

    def test_entries_in_ledger_order(self, session, posted_ledger):
        entries = SupplierLedgerSelector(session).entries(posted_ledger)
        assert [e.reference for e in entries] == ["PO000001", "PO000002", "PAY-000001"]
        assert [e.balance for e in entries] == [Decimal("1000"), Decimal("1500"), Decimal("1200")]

    def test_entries_filtered(self, session, posted_ledger):
        selector = SupplierLedgerSelector(session)
        payments = selector.entries(posted_ledger, transaction_type=SupplierTransactionType.PAYMENT)
        assert len(payments) == 1
        partial = selector.entries(posted_ledger, payment_status=PaymentStatus.PARTIAL)
        assert {e.reference for e in partial} == {"PO000001", "PO000002", "PAY-000001"}
        recent = selector.entries(posted_ledger, date_from=date(2024, 1, 20))
        assert [e.reference for e in recent] == ["PO000002", "PAY-000001"]

    def test_summary(self, session, posted_ledger):
        summary = SupplierLedgerSelector(session).summary(posted_ledger, as_of=date(2024, 1, 31))
        assert summary.total_debits == Decimal("1500")
        assert summary.total_credits == Decimal("300")
        assert summary.outstanding_balance == Decimal("1200")
        assert summary.entry_count == 3
        assert summary.overdue_count == 1
        assert summary.last_transaction_date == date(2024, 1, 29)

    def test_summary_without_entries(self, session, catalog):
        summary = SupplierLedgerSelector(session).summary(catalog.other_supplier.id)
        assert summary.entry_count == 0
        assert summary.outstanding_balance == Decimal("0")
        assert summary.last_transaction_date is None

    def test_statement(self, session, posted_ledger):
        statement = SupplierLedgerSelector(session).statement(
            posted_ledger, date(2024, 1, 20), date(2024, 1, 31)
        )
        assert statement.opening_balance == Decimal("1000")
        assert [e.reference for e in statement.entries] == ["PO000002", "PAY-000001"]
        assert statement.total_debits == Decimal("500")
        assert statement.total_credits == Decimal("300")
        assert statement.closing_balance == Decimal("1200")

    def test_statement_empty_range_closes_at_opening(self, session, posted_ledger):
        statement = SupplierLedgerSelector(session).statement(
            posted_ledger, date(2024, 6, 1), date(2024, 6, 30)
        )
        assert statement.entries == ()
        assert statement.closing_balance == statement.opening_balance == Decimal("1200")

    def test_overdue(self, session, posted_ledger):
        overdue = SupplierLedgerSelector(session).overdue(date(2024, 3, 1))
        assert [e.reference for e in overdue] == ["PO000001", "PO000002"]
        assert SupplierLedgerSelector(session).overdue(date(2024, 1, 10)) == []


class TestRunningBalanceVerification:

    def test_clean_ledger(self, session, posted_ledger):
        assert SupplierLedgerSelector(session).verify_running_balance(posted_ledger) == Decimal("1200")

    def test_tampered_balance_detected(self, session, posted_ledger, captured_logs):
        # Bulk UPDATE skips the immutability listeners
        session.execute(
            update(SupplierLedgerEntryModel)
            .where(SupplierLedgerEntryModel.reference == "PO000002")
            .values(balance=Decimal("1499"))
        )
        session.commit()
        session.expire_all()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            SupplierLedgerSelector(session).verify_running_balance(posted_ledger)
        assert exc_info.value.ledger == "supplier"
        assert exc_info.value.expected == Decimal("1500")
        assert captured_logs.find("supplier_balance_mismatch")
