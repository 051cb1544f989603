"""
Supplier ledger query selector.

Read-only access to supplier ledger entries, balances and statements.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session, never creates its own
- Entry order is (transaction_date, sequence), the same order the running
  balance is computed in

Invariants:
- balance_n = balance_(n-1) + debit_n - credit_n per supplier
  (verify_running_balance raises LedgerIntegrityError otherwise)
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_kernel.domain.dtos import (
    PaymentStatus,
    SupplierLedgerEntryDTO,
    SupplierTransactionType,
)
from materials_kernel.exceptions import LedgerIntegrityError
from materials_kernel.logging_config import get_logger
from materials_kernel.models.supplier_ledger import SupplierLedgerEntryModel
from materials_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.supplier_ledger")

ZERO = Decimal("0")

_UNPAID = (
    PaymentStatus.PENDING.value,
    PaymentStatus.PARTIAL.value,
    PaymentStatus.OVERDUE.value,
)


@dataclass(frozen=True)
class SupplierSummary:
    """Totals for one supplier."""

    supplier_id: UUID
    total_debits: Decimal
    total_credits: Decimal
    outstanding_balance: Decimal
    entry_count: int
    overdue_count: int
    last_transaction_date: date | None


@dataclass(frozen=True)
class SupplierStatement:
    """Entries within a date range, bracketed by opening and closing balances."""

    supplier_id: UUID
    date_from: date
    date_to: date
    opening_balance: Decimal
    entries: tuple[SupplierLedgerEntryDTO, ...]
    closing_balance: Decimal

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit_amount for e in self.entries), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit_amount for e in self.entries), ZERO)


class SupplierLedgerSelector(BaseSelector[SupplierLedgerEntryModel]):
    """Selector for supplier balances and ledger history."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _ordered(self, supplier_id: UUID):
        return (
            select(SupplierLedgerEntryModel)
            .where(SupplierLedgerEntryModel.supplier_id == supplier_id)
            .order_by(
                SupplierLedgerEntryModel.transaction_date,
                SupplierLedgerEntryModel.sequence,
            )
        )

    def entries(
        self,
        supplier_id: UUID,
        transaction_type: SupplierTransactionType | None = None,
        payment_status: PaymentStatus | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[SupplierLedgerEntryDTO]:
        """Entries for a supplier in ledger order, optionally filtered."""
        query = self._ordered(supplier_id)
        if transaction_type is not None:
            query = query.where(
                SupplierLedgerEntryModel.transaction_type == transaction_type.value
            )
        if payment_status is not None:
            query = query.where(
                SupplierLedgerEntryModel.payment_status == payment_status.value
            )
        if date_from is not None:
            query = query.where(SupplierLedgerEntryModel.transaction_date >= date_from)
        if date_to is not None:
            query = query.where(SupplierLedgerEntryModel.transaction_date <= date_to)
        return [e.to_dto() for e in self.session.execute(query).scalars()]

    def balance(self, supplier_id: UUID) -> Decimal:
        """Balance after the supplier's latest entry; zero with no entries."""
        balance = self.session.execute(
            select(SupplierLedgerEntryModel.balance)
            .where(SupplierLedgerEntryModel.supplier_id == supplier_id)
            .order_by(
                SupplierLedgerEntryModel.transaction_date.desc(),
                SupplierLedgerEntryModel.sequence.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        return balance if balance is not None else ZERO

    def summary(self, supplier_id: UUID, as_of: date | None = None) -> SupplierSummary:
        """
        Debit/credit totals, outstanding balance and overdue count.

        An entry counts as overdue when it is flagged OVERDUE, or when it is
        an unpaid PURCHASE whose due date is before ``as_of``.
        """
        entries = self.entries(supplier_id)
        overdue = 0
        for e in entries:
            if e.payment_status is PaymentStatus.OVERDUE:
                overdue += 1
            elif (
                as_of is not None
                and e.transaction_type is SupplierTransactionType.PURCHASE
                and e.payment_status.value in _UNPAID
                and e.due_date is not None
                and e.due_date < as_of
            ):
                overdue += 1

        return SupplierSummary(
            supplier_id=supplier_id,
            total_debits=sum((e.debit_amount for e in entries), ZERO),
            total_credits=sum((e.credit_amount for e in entries), ZERO),
            outstanding_balance=entries[-1].balance if entries else ZERO,
            entry_count=len(entries),
            overdue_count=overdue,
            last_transaction_date=entries[-1].transaction_date if entries else None,
        )

    def statement(
        self,
        supplier_id: UUID,
        date_from: date,
        date_to: date,
    ) -> SupplierStatement:
        """Statement for [date_from, date_to], inclusive."""
        opening = self.session.execute(
            select(SupplierLedgerEntryModel.balance)
            .where(
                SupplierLedgerEntryModel.supplier_id == supplier_id,
                SupplierLedgerEntryModel.transaction_date < date_from,
            )
            .order_by(
                SupplierLedgerEntryModel.transaction_date.desc(),
                SupplierLedgerEntryModel.sequence.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        opening = opening if opening is not None else ZERO

        entries = tuple(self.entries(supplier_id, date_from=date_from, date_to=date_to))
        return SupplierStatement(
            supplier_id=supplier_id,
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            entries=entries,
            closing_balance=entries[-1].balance if entries else opening,
        )

    def overdue(self, as_of: date, supplier_id: UUID | None = None) -> list[SupplierLedgerEntryDTO]:
        """Unpaid PURCHASE entries due before ``as_of``, oldest due date first."""
        query = select(SupplierLedgerEntryModel).where(
            SupplierLedgerEntryModel.transaction_type
            == SupplierTransactionType.PURCHASE.value,
            SupplierLedgerEntryModel.payment_status.in_(_UNPAID),
            SupplierLedgerEntryModel.due_date < as_of,
        )
        if supplier_id is not None:
            query = query.where(SupplierLedgerEntryModel.supplier_id == supplier_id)
        query = query.order_by(
            SupplierLedgerEntryModel.due_date, SupplierLedgerEntryModel.sequence
        )
        return [e.to_dto() for e in self.session.execute(query).scalars()]

    def verify_running_balance(self, supplier_id: UUID) -> Decimal:
        """
        Recompute every balance from zero and compare with the stored ones.

        Returns the verified final balance.

        Raises:
            LedgerIntegrityError: first entry whose stored balance differs.
        """
        running = ZERO
        for entry in self.session.execute(self._ordered(supplier_id)).scalars():
            running = running + entry.debit_amount - entry.credit_amount
            if entry.balance != running:
                logger.error(
                    "supplier_balance_mismatch",
                    extra={
                        "supplier_id": str(supplier_id),
                        "entry_id": str(entry.id),
                        "sequence": entry.sequence,
                        "expected": running,
                        "actual": entry.balance,
                    },
                )
                raise LedgerIntegrityError(
                    ledger="supplier",
                    key=f"{supplier_id}#{entry.sequence}",
                    expected=running,
                    actual=entry.balance,
                )
        return running
