"""
PurchaseOrderService: GST totals, DRAFT-only editing, placing against the
supplier ledger, cancellation and receipt bookkeeping.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from materials_kernel.domain.dtos import SupplierTransactionType
from materials_kernel.exceptions import (
    DuplicatePostingError,
    InvalidMrrStateError,
    InvalidPoStateError,
    InvalidTaxRateError,
    OverReceiptError,
    ReceiptLineMismatchError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.selectors.supplier_ledger_selector import SupplierLedgerSelector
from materials_modules.procurement import PoStatus, PurchaseOrderService
from materials_modules.requisitions import MrrService


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify_po_placed(self, po, supplier):
        self.sent.append((po.po_number, supplier.supplier_name))


class FailingNotifier:
    def notify_po_placed(self, po, supplier):
        raise ConnectionError("gateway unreachable")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def po_service(session, deterministic_clock, materials_config, notifier):
    return PurchaseOrderService(
        session, clock=deterministic_clock, config=materials_config, notifier=notifier
    )


def _cement_line(catalog, quantity="10", price="50"):
    return {
        "item_id": catalog.cement.id,
        "unit_id": catalog.bag_unit_id,
        "quantity_ordered": quantity,
        "unit_price": price,
        "cgst_rate": "9",
        "sgst_rate": "9",
    }


@pytest.fixture
def draft_po(po_service, catalog, actor_id, project_id):
    return po_service.create_purchase_order(
        supplier_id=catalog.supplier.id,
        lines=[_cement_line(catalog)],
        actor_id=actor_id,
        project_id=project_id,
    )


@pytest.fixture
def approved_po(po_service, draft_po, approver_id):
    return po_service.approve(draft_po.id, approver_id)


@pytest.fixture
def placed_po(po_service, approved_po, actor_id):
    return po_service.place(approved_po.id, actor_id)


class TestPurchaseOrderTotals:

    def test_gst_totals(self, draft_po):
        assert draft_po.po_number == "PO000001"
        assert draft_po.status is PoStatus.DRAFT
        assert draft_po.subtotal == Decimal("500")
        assert draft_po.cgst_total == Decimal("45")
        assert draft_po.sgst_total == Decimal("45")
        assert draft_po.igst_total == Decimal("0")
        assert draft_po.tax_amount == Decimal("90")
        assert draft_po.total_amount == Decimal("590")

    def test_interstate_line(self, po_service, catalog, actor_id):
        po = po_service.create_purchase_order(
            supplier_id=catalog.other_supplier.id,
            lines=[
                {
                    "item_id": catalog.steel.id,
                    "quantity_ordered": "1000",
                    "unit_price": "65",
                    "igst_rate": "18",
                }
            ],
            actor_id=actor_id,
        )
        assert po.igst_total == Decimal("11700")
        assert po.total_amount == Decimal("76700")

    def test_multi_line_totals_match_lines(self, po_service, catalog, actor_id):
        po = po_service.create_purchase_order(
            supplier_id=catalog.supplier.id,
            lines=[
                _cement_line(catalog, "3", "333.33"),
                {"item_id": catalog.sand.id, "quantity_ordered": "7.5", "unit_price": "48.10",
                 "cgst_rate": "2.5", "sgst_rate": "2.5"},
            ],
            actor_id=actor_id,
        )
        assert po.subtotal == sum(l.line_total for l in po.lines)
        assert po.tax_amount == sum(l.tax_amount for l in po.lines)
        assert po.total_amount == po.subtotal + po.tax_amount

    def test_invalid_rate_rejected(self, po_service, catalog, actor_id):
        line = _cement_line(catalog)
        line["cgst_rate"] = "101"
        with pytest.raises(InvalidTaxRateError):
            po_service.create_purchase_order(catalog.supplier.id, [line], actor_id)

    def test_unknown_supplier(self, po_service, catalog, actor_id):
        with pytest.raises(ReferenceNotFoundError):
            po_service.create_purchase_order(uuid4(), [_cement_line(catalog)], actor_id)


class TestPurchaseOrderEditing:

    def test_add_line_recomputes(self, po_service, draft_po, catalog, actor_id):
        po = po_service.add_line(
            draft_po.id,
            {"item_id": catalog.sand.id, "quantity_ordered": "2", "unit_price": "100"},
            actor_id,
        )
        assert [l.line_number for l in po.lines] == [1, 2]
        assert po.total_amount == Decimal("790")

    def test_update_line_recomputes(self, po_service, draft_po, actor_id):
        po = po_service.update_line(
            draft_po.id, draft_po.lines[0].id, {"quantity_ordered": "20"}, actor_id
        )
        assert po.lines[0].cgst_rate == Decimal("9")
        assert po.subtotal == Decimal("1000")
        assert po.total_amount == Decimal("1180")

    def test_remove_line(self, po_service, draft_po, actor_id):
        po = po_service.remove_line(draft_po.id, draft_po.lines[0].id, actor_id)
        assert po.lines == ()
        assert po.total_amount == Decimal("0")

    def test_edits_require_draft(self, po_service, approved_po, catalog, actor_id):
        with pytest.raises(InvalidPoStateError) as exc_info:
            po_service.add_line(approved_po.id, _cement_line(catalog), actor_id)
        assert exc_info.value.actual == "APPROVED"
        assert exc_info.value.required == "DRAFT"

        with pytest.raises(InvalidPoStateError):
            po_service.update_line(
                approved_po.id, approved_po.lines[0].id, {"unit_price": "1"}, actor_id
            )
        assert po_service.get_purchase_order(approved_po.id).total_amount == Decimal("590")


class TestPlacing:

    def test_approve_requires_lines(self, po_service, catalog, actor_id, approver_id):
        empty = po_service.create_purchase_order(catalog.supplier.id, [], actor_id)
        with pytest.raises(ValidationError):
            po_service.approve(empty.id, approver_id)

    def test_place_posts_purchase(self, session, po_service, approved_po, catalog, actor_id, notifier):
        placed = po_service.place(approved_po.id, actor_id)

        assert placed.status is PoStatus.PLACED
        assert placed.placed_by == actor_id
        entries = SupplierLedgerSelector(session).entries(catalog.supplier.id)
        assert len(entries) == 1
        purchase = entries[0]
        assert purchase.transaction_type is SupplierTransactionType.PURCHASE
        assert purchase.reference == "PO000001"
        assert purchase.debit_amount == Decimal("590")
        assert purchase.balance == Decimal("590")
        assert purchase.due_date == date(2024, 2, 14)
        assert notifier.sent == [("PO000001", "Sri Balaji Traders")]

    def test_balance_builds_on_previous(
        self, session, po_service, approved_po, catalog, actor_id, approver_id
    ):
        po_service.place(approved_po.id, actor_id)
        second = po_service.create_purchase_order(
            catalog.supplier.id, [_cement_line(catalog, "1", "1000")], actor_id
        )
        po_service.approve(second.id, approver_id)
        po_service.place(second.id, actor_id)

        assert SupplierLedgerSelector(session).balance(catalog.supplier.id) == Decimal("1770")

    def test_due_date_from_expected_delivery(self, session, po_service, catalog, actor_id, approver_id):
        po = po_service.create_purchase_order(
            catalog.supplier.id,
            [_cement_line(catalog)],
            actor_id,
            expected_delivery_date=date(2024, 1, 25),
        )
        po_service.approve(po.id, approver_id)
        po_service.place(po.id, actor_id)
        purchase = SupplierLedgerSelector(session).entries(catalog.supplier.id)[0]
        assert purchase.due_date == date(2024, 1, 25)

    def test_place_twice_is_duplicate(self, session, po_service, approved_po, catalog, actor_id):
        po_service.place(approved_po.id, actor_id)

        with pytest.raises(DuplicatePostingError) as exc_info:
            po_service.place(approved_po.id, actor_id)

        assert exc_info.value.reference == "PO000001"
        assert SupplierLedgerSelector(session).balance(catalog.supplier.id) == Decimal("590")
        assert len(SupplierLedgerSelector(session).entries(catalog.supplier.id)) == 1

    def test_place_draft_rejected(self, session, po_service, draft_po, catalog, actor_id):
        with pytest.raises(InvalidPoStateError) as exc_info:
            po_service.place(draft_po.id, actor_id)
        assert exc_info.value.required == "APPROVED"
        assert SupplierLedgerSelector(session).entries(catalog.supplier.id) == []

    def test_notifier_failure_does_not_undo_place(
        self, session, deterministic_clock, approved_po, catalog, actor_id, captured_logs
    ):
        service = PurchaseOrderService(
            session, clock=deterministic_clock, notifier=FailingNotifier()
        )
        placed = service.place(approved_po.id, actor_id)

        assert placed.status is PoStatus.PLACED
        assert SupplierLedgerSelector(session).balance(catalog.supplier.id) == Decimal("590")
        failed = captured_logs.find("po_notification_failed")
        assert failed[-1]["exc_type"] == "ConnectionError"

    def test_default_notifier_logs(self, session, deterministic_clock, approved_po, actor_id, captured_logs):
        PurchaseOrderService(session, clock=deterministic_clock).place(approved_po.id, actor_id)
        assert captured_logs.find("po_notification_logged")


class TestCancelAndClose:

    def test_cancel_draft(self, session, po_service, draft_po, catalog, actor_id):
        cancelled = po_service.cancel(draft_po.id, actor_id, "Supplier out of stock")
        assert cancelled.status is PoStatus.CANCELLED
        assert cancelled.cancelled_reason == "Supplier out of stock"
        assert SupplierLedgerSelector(session).entries(catalog.supplier.id) == []

    def test_cancel_placed_credits_supplier(self, session, po_service, approved_po, catalog, actor_id):
        po_service.place(approved_po.id, actor_id)
        po_service.cancel(approved_po.id, actor_id, "Price revised")

        entries = SupplierLedgerSelector(session).entries(catalog.supplier.id)
        assert [e.reference for e in entries] == ["PO000001", "PO000001-CANCEL"]
        assert entries[-1].credit_amount == Decimal("590")
        assert SupplierLedgerSelector(session).balance(catalog.supplier.id) == Decimal("0")

    def test_cancel_requires_reason(self, po_service, draft_po, actor_id):
        with pytest.raises(ValidationError):
            po_service.cancel(draft_po.id, actor_id, "")

    def test_cancelled_is_terminal(self, po_service, draft_po, actor_id, approver_id):
        po_service.cancel(draft_po.id, actor_id, "duplicate order")
        with pytest.raises(InvalidPoStateError):
            po_service.approve(draft_po.id, approver_id)

    def test_close_requires_full_receipt(self, po_service, approved_po, actor_id):
        with pytest.raises(InvalidPoStateError) as exc_info:
            po_service.close(approved_po.id, actor_id)
        assert exc_info.value.required == "FULLY_RECEIVED"

    def test_close_after_full_receipt(self, session, po_service, placed_po, actor_id):
        line = placed_po.lines[0]
        po_service.record_line_receipt(placed_po.id, line.id, Decimal("10"), actor_id)
        po_service.refresh_receipt_status(placed_po.id, actor_id)
        session.commit()

        assert po_service.close(placed_po.id, actor_id).status is PoStatus.CLOSED


class TestReceiptBookkeeping:

    def test_partial_then_full(self, session, po_service, placed_po, actor_id):
        line = placed_po.lines[0]
        po_service.record_line_receipt(placed_po.id, line.id, Decimal("4"), actor_id)
        po = po_service.refresh_receipt_status(placed_po.id, actor_id)
        assert po.status is PoStatus.PARTIALLY_RECEIVED
        assert po.lines[0].quantity_outstanding == Decimal("6")

        po_service.record_line_receipt(placed_po.id, line.id, Decimal("6"), actor_id)
        po = po_service.refresh_receipt_status(placed_po.id, actor_id)
        assert po.status is PoStatus.FULLY_RECEIVED
        assert po.quantity_received == po.quantity_ordered

    def test_nothing_received_keeps_status(self, po_service, placed_po, actor_id):
        assert po_service.refresh_receipt_status(placed_po.id, actor_id).status is PoStatus.PLACED

    def test_over_receipt_rejected(self, po_service, placed_po, actor_id):
        with pytest.raises(OverReceiptError) as exc_info:
            po_service.record_line_receipt(
                placed_po.id, placed_po.lines[0].id, Decimal("11"), actor_id
            )
        assert exc_info.value.quantity_ordered == Decimal("10")

    def test_over_receipt_allowed_flags_line(self, po_service, placed_po, actor_id):
        line = po_service.record_line_receipt(
            placed_po.id, placed_po.lines[0].id, Decimal("12"), actor_id,
            allow_over_receipt=True,
        )
        assert line.over_receipt
        assert line.quantity_received == Decimal("12")

    def test_foreign_line_rejected(self, po_service, placed_po, actor_id):
        with pytest.raises(ReceiptLineMismatchError):
            po_service.record_line_receipt(placed_po.id, uuid4(), Decimal("1"), actor_id)

    def test_draft_not_receivable(self, po_service, draft_po):
        with pytest.raises(InvalidPoStateError):
            po_service.require_receivable(draft_po.id)

    def test_approved_not_receivable_until_placed(self, po_service, approved_po, actor_id):
        with pytest.raises(InvalidPoStateError) as exc_info:
            po_service.record_line_receipt(
                approved_po.id, approved_po.lines[0].id, Decimal("10"), actor_id
            )
        assert exc_info.value.actual == "APPROVED"
        assert po_service.get_purchase_order(approved_po.id).lines[0].quantity_received == Decimal("0")

        po_service.place(approved_po.id, actor_id)
        line = po_service.record_line_receipt(
            approved_po.id, approved_po.lines[0].id, Decimal("10"), actor_id
        )
        assert line.quantity_received == Decimal("10")


class TestCreateFromMrr:

    @pytest.fixture
    def mrr_service(self, session, deterministic_clock):
        return MrrService(session, clock=deterministic_clock)

    @pytest.fixture
    def submitted_mrr(self, mrr_service, catalog, project_id, actor_id):
        mrr = mrr_service.create_mrr(
            project_id=project_id,
            requested_by=actor_id,
            items=[
                {"item_id": catalog.cement.id, "quantity_requested": "40",
                 "unit_id": catalog.bag_unit_id, "estimated_cost_per_unit": "375"},
                {"item_id": catalog.sand.id, "quantity_requested": "5",
                 "estimated_cost_per_unit": "50"},
            ],
        )
        return mrr_service.submit(mrr.id, actor_id)

    def test_requires_approved_mrr(self, po_service, submitted_mrr, catalog, actor_id):
        with pytest.raises(InvalidMrrStateError) as exc_info:
            po_service.create_from_mrr(submitted_mrr.id, catalog.supplier.id, actor_id)
        assert exc_info.value.required == "APPROVED"
        assert exc_info.value.actual == "SUBMITTED"

    def test_lines_default_to_mrr_items(
        self, po_service, mrr_service, submitted_mrr, catalog, actor_id, approver_id, project_id
    ):
        mrr_service.approve(submitted_mrr.id, approver_id)
        po = po_service.create_from_mrr(submitted_mrr.id, catalog.supplier.id, actor_id)

        assert po.mrr_id == submitted_mrr.id
        assert po.project_id == project_id
        assert [(l.item_id, l.quantity_ordered) for l in po.lines] == [
            (catalog.cement.id, Decimal("40")),
            (catalog.sand.id, Decimal("5")),
        ]
        assert po.total_amount == Decimal("15250")
        assert [p.id for p in po_service.list_for_mrr(submitted_mrr.id)] == [po.id]

    def test_explicit_lines(self, po_service, mrr_service, submitted_mrr, catalog, actor_id, approver_id):
        mrr_service.approve(submitted_mrr.id, approver_id)
        po = po_service.create_from_mrr(
            submitted_mrr.id, catalog.supplier.id, actor_id, lines=[_cement_line(catalog)]
        )
        assert len(po.lines) == 1
        assert po.total_amount == Decimal("590")
