"""
Procurement Module Service (``materials_modules.procurement.service``).

Responsibility
--------------
Purchase order lifecycle: create (standalone or from an approved MRR), edit
lines while DRAFT, approve, place (posting the supplier PURCHASE debit),
cancel, close; plus the receipt bookkeeping that the receiving module drives
(line received quantities and the derived receiving status).

Architecture position
---------------------
**Modules layer** -- ``PurchaseOrderService`` owns the PO tables and is the
only writer of PO status.  Supplier ledger postings go through the kernel
``SupplierLedgerService``; MRR state checks go through ``MrrService``.

Invariants enforced
-------------------
* subtotal = sum(quantity x price), tax = sum of line GST,
  total = subtotal + tax; recomputed from every line after each edit.
* Lines are edited only while DRAFT (``InvalidPoStateError``).
* ``place`` marks the PO PLACED and posts exactly one PURCHASE supplier
  ledger entry in the same transaction; a failed posting rolls back both.
* ``record_line_receipt`` / ``refresh_receipt_status`` flush only; they run
  inside the receiving module's transaction.
* Receiving status compares total received against total ordered.

Failure modes
-------------
* ``InvalidPoStateError`` -- wrong state for the action.
* ``InvalidMrrStateError`` -- ``create_from_mrr`` on an MRR that is not
  APPROVED.
* ``DuplicatePostingError`` -- placing a PO that already has its PURCHASE
  posting.
* ``OverReceiptError`` / ``ReceiptLineMismatchError`` -- receipt bookkeeping.
* ``InvalidTaxRateError`` / ``InvalidQuantityError`` -- bad line input.

Usage::

    service = PurchaseOrderService(session, clock=clock)
    po = service.create_purchase_order(
        supplier_id=supplier.id,
        lines=[{"item_id": cement.id, "quantity_ordered": "10",
                "unit_price": "50", "cgst_rate": "9", "sgst_rate": "9"}],
        actor_id=actor_id,
    )
    service.approve(po.id, approver_id)
    service.place(po.id, actor_id)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_config.schema import MaterialsConfig
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import SupplierInfo
from materials_kernel.domain.tax import (
    GstRates,
    LineAmounts,
    compute_document_totals,
    compute_line_amounts,
)
from materials_kernel.exceptions import (
    DuplicatePostingError,
    InvalidPoStateError,
    InvalidQuantityError,
    OverReceiptError,
    ReceiptLineMismatchError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.sequence_service import SequenceService
from materials_kernel.services.supplier_ledger import SupplierLedgerService
from materials_modules.procurement.models import (
    PoStatus,
    PurchaseOrder,
    PurchaseOrderLine,
)
from materials_modules.procurement.notifications import LoggingPoNotifier, PoNotifier
from materials_modules.procurement.orm import PurchaseOrderLineModel, PurchaseOrderModel
from materials_modules.procurement.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    RECEIVABLE_STATES,
)
from materials_modules.requisitions.service import MrrService

logger = get_logger("modules.procurement.service")

ZERO = Decimal("0")

_EDITABLE = (PoStatus.DRAFT.value,)

_LINE_FIELDS = (
    "item_id",
    "quantity_ordered",
    "unit_price",
    "unit_id",
    "cgst_rate",
    "sgst_rate",
    "igst_rate",
    "specifications",
    "size",
)


def _decimal(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value if value is not None else default))


class PurchaseOrderService:
    """
    Orchestrates purchase orders.

    Contract
    --------
    * Public lifecycle methods return a ``PurchaseOrder`` DTO after commit.
    * ``record_line_receipt`` and ``refresh_receipt_status`` never commit.

    Guarantees
    ----------
    * Session is committed only on success; any exception rolls back.
    * The notifier runs after commit; its failures are logged, not raised.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MaterialsConfig | None = None,
        notifier: PoNotifier | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or MaterialsConfig()
        self._notifier = notifier or LoggingPoNotifier()
        self._catalog = CatalogService(session)
        self._sequences = SequenceService(session)
        self._supplier_ledger = SupplierLedgerService(
            session,
            self._clock,
            payment_due_days=self._config.payment_due_days,
            payment_prefix=self._config.payment_code.prefix,
            payment_code_width=self._config.payment_code.width,
        )
        self._mrrs = MrrService(session, self._clock, self._config)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, po_id: UUID, lock: bool = False) -> PurchaseOrderModel:
        query = select(PurchaseOrderModel).where(PurchaseOrderModel.id == po_id)
        if lock:
            query = query.with_for_update()
        po = self._session.execute(query).scalar_one_or_none()
        if po is None:
            raise ReferenceNotFoundError("PurchaseOrder", str(po_id))
        return po

    def _require_editable(self, po: PurchaseOrderModel, action: str) -> None:
        if po.status not in _EDITABLE:
            logger.warning(
                "po_edit_rejected",
                extra={"po_id": str(po.id), "action": action, "status": po.status},
            )
            raise InvalidPoStateError(
                entity_id=str(po.id),
                action=action,
                actual=po.status,
                required=_EDITABLE,
            )

    def _build_line(
        self, line_number: int, data: dict[str, Any], actor_id: UUID
    ) -> PurchaseOrderLineModel:
        item_id = data.get("item_id")
        if item_id is None:
            raise ValidationError("item_id is required", field="item_id")
        self._catalog.require_item(item_id)

        unit_id = data.get("unit_id")
        if unit_id is not None:
            self._catalog.require_unit(unit_id)

        quantity = _decimal(data.get("quantity_ordered"))
        unit_price = _decimal(data.get("unit_price"))
        rates = GstRates(
            cgst_rate=_decimal(data.get("cgst_rate")),
            sgst_rate=_decimal(data.get("sgst_rate")),
            igst_rate=_decimal(data.get("igst_rate")),
        )
        amounts = compute_line_amounts(
            quantity, unit_price, rates, self._config.tax_decimal_places
        )

        return PurchaseOrderLineModel(
            line_number=line_number,
            item_id=item_id,
            unit_id=unit_id,
            quantity_ordered=quantity,
            unit_price=unit_price,
            line_total=amounts.line_total,
            cgst_rate=rates.cgst_rate,
            sgst_rate=rates.sgst_rate,
            igst_rate=rates.igst_rate,
            cgst_amount=amounts.cgst_amount,
            sgst_amount=amounts.sgst_amount,
            igst_amount=amounts.igst_amount,
            quantity_received=ZERO,
            over_receipt=False,
            specifications=data.get("specifications"),
            size=data.get("size"),
            created_by_id=actor_id,
        )

    @staticmethod
    def _recompute_totals(po: PurchaseOrderModel) -> None:
        totals = compute_document_totals(
            LineAmounts(
                line_total=line.line_total,
                cgst_amount=line.cgst_amount,
                sgst_amount=line.sgst_amount,
                igst_amount=line.igst_amount,
            )
            for line in po.lines
        )
        po.subtotal = totals.subtotal
        po.cgst_total = totals.cgst_total
        po.sgst_total = totals.sgst_total
        po.igst_total = totals.igst_total
        po.tax_amount = totals.tax_amount
        po.total_amount = totals.total_amount

    def _find_line(self, po: PurchaseOrderModel, po_line_id: UUID) -> PurchaseOrderLineModel:
        for line in po.lines:
            if line.id == po_line_id:
                return line
        raise ReferenceNotFoundError("PurchaseOrderLine", str(po_line_id))

    def _transition(
        self,
        po: PurchaseOrderModel,
        action: str,
        actor_id: UUID,
        to_state: str | None = None,
    ) -> str:
        transition = PURCHASE_ORDER_WORKFLOW.require(
            action, po.status, po.id, error_cls=InvalidPoStateError, to_state=to_state
        )
        previous = po.status
        po.status = transition.to_state
        po.touch(actor_id)
        logger.info(
            "po_status_changed",
            extra={
                "po_id": str(po.id),
                "po_number": po.po_number,
                "action": action,
                "from_state": previous,
                "to_state": po.status,
            },
        )
        return previous

    def _new_po(
        self,
        supplier_id: UUID,
        lines: Sequence[dict[str, Any]],
        actor_id: UUID,
        mrr_id: UUID | None,
        project_id: UUID | None,
        po_date: date | None,
        expected_delivery_date: date | None,
        payment_terms: str | None,
        delivery_terms: str | None,
        notes: str | None,
    ) -> PurchaseOrderModel:
        self._catalog.require_supplier(supplier_id)
        code = self._config.po_code
        po = PurchaseOrderModel(
            po_number=self._sequences.next_code(
                SequenceService.PURCHASE_ORDER, code.prefix, code.width
            ),
            mrr_id=mrr_id,
            project_id=project_id,
            supplier_id=supplier_id,
            po_date=po_date or self._clock.today(),
            expected_delivery_date=expected_delivery_date,
            status=PURCHASE_ORDER_WORKFLOW.initial_state,
            payment_terms=payment_terms,
            delivery_terms=delivery_terms,
            notes=notes,
            created_by_id=actor_id,
        )
        for number, data in enumerate(lines, start=1):
            po.lines.append(self._build_line(number, data, actor_id))
        self._recompute_totals(po)

        self._session.add(po)
        self._session.flush()
        logger.info(
            "po_created",
            extra={
                "po_id": str(po.id),
                "po_number": po.po_number,
                "supplier_id": str(supplier_id),
                "mrr_id": str(mrr_id) if mrr_id else None,
                "line_count": len(po.lines),
                "total_amount": po.total_amount,
            },
        )
        return po

    # =========================================================================
    # Create and edit
    # =========================================================================

    def create_purchase_order(
        self,
        supplier_id: UUID,
        lines: Sequence[dict[str, Any]],
        actor_id: UUID,
        project_id: UUID | None = None,
        po_date: date | None = None,
        expected_delivery_date: date | None = None,
        payment_terms: str | None = None,
        delivery_terms: str | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Create a DRAFT PO with an allocated ``PO000123``-style number."""
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder"):
            try:
                po = self._new_po(
                    supplier_id,
                    lines,
                    actor_id,
                    mrr_id=None,
                    project_id=project_id,
                    po_date=po_date,
                    expected_delivery_date=expected_delivery_date,
                    payment_terms=payment_terms,
                    delivery_terms=delivery_terms,
                    notes=notes,
                )
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def create_from_mrr(
        self,
        mrr_id: UUID,
        supplier_id: UUID,
        actor_id: UUID,
        lines: Sequence[dict[str, Any]] | None = None,
        po_date: date | None = None,
        expected_delivery_date: date | None = None,
        payment_terms: str | None = None,
        delivery_terms: str | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Create a DRAFT PO against an APPROVED MRR.

        The PO inherits the MRR's project.  When ``lines`` is None every MRR
        item becomes a line, priced at its estimated cost with no GST.
        """
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder"):
            try:
                mrr = self._mrrs.require_approved(mrr_id, action="create_purchase_order")
                if lines is None:
                    lines = [
                        {
                            "item_id": item.item_id,
                            "quantity_ordered": item.quantity_requested,
                            "unit_price": item.estimated_cost_per_unit,
                            "unit_id": item.unit_id,
                            "specifications": item.specifications,
                        }
                        for item in mrr.items
                    ]
                po = self._new_po(
                    supplier_id,
                    lines,
                    actor_id,
                    mrr_id=mrr.id,
                    project_id=mrr.project_id,
                    po_date=po_date,
                    expected_delivery_date=expected_delivery_date,
                    payment_terms=payment_terms,
                    delivery_terms=delivery_terms,
                    notes=notes,
                )
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def add_line(self, po_id: UUID, line: dict[str, Any], actor_id: UUID) -> PurchaseOrder:
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                self._require_editable(po, "add_line")
                next_number = max((l.line_number for l in po.lines), default=0) + 1
                po.lines.append(self._build_line(next_number, line, actor_id))
                self._recompute_totals(po)
                po.touch(actor_id)
                self._session.flush()
                logger.info(
                    "po_line_added",
                    extra={
                        "po_id": str(po.id),
                        "line_number": next_number,
                        "total_amount": po.total_amount,
                    },
                )
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def update_line(
        self,
        po_id: UUID,
        po_line_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> PurchaseOrder:
        """Change quantity, price, rates or descriptive fields of one DRAFT line."""
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                self._require_editable(po, "update_line")
                line = self._find_line(po, po_line_id)

                merged = {name: getattr(line, name) for name in _LINE_FIELDS}
                merged.update(changes)
                rebuilt = self._build_line(line.line_number, merged, actor_id)
                for name in _LINE_FIELDS + (
                    "line_total",
                    "cgst_amount",
                    "sgst_amount",
                    "igst_amount",
                ):
                    setattr(line, name, getattr(rebuilt, name))
                line.touch(actor_id)

                self._recompute_totals(po)
                po.touch(actor_id)
                self._session.flush()
                logger.info(
                    "po_line_updated",
                    extra={
                        "po_id": str(po.id),
                        "po_line_id": str(po_line_id),
                        "fields": sorted(changes.keys()),
                        "total_amount": po.total_amount,
                    },
                )
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def remove_line(self, po_id: UUID, po_line_id: UUID, actor_id: UUID) -> PurchaseOrder:
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                self._require_editable(po, "remove_line")
                po.lines.remove(self._find_line(po, po_line_id))
                self._recompute_totals(po)
                po.touch(actor_id)
                self._session.flush()
                logger.info(
                    "po_line_removed",
                    extra={
                        "po_id": str(po.id),
                        "po_line_id": str(po_line_id),
                        "total_amount": po.total_amount,
                    },
                )
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Workflow
    # =========================================================================

    def approve(self, po_id: UUID, approver_id: UUID) -> PurchaseOrder:
        """DRAFT -> APPROVED.  The PO must have at least one line."""
        with LogContext.bind(actor_id=approver_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                PURCHASE_ORDER_WORKFLOW.require(
                    "approve", po.status, po.id, error_cls=InvalidPoStateError
                )
                if not po.lines:
                    raise ValidationError("purchase order must have at least one line", field="lines")
                self._transition(po, "approve", approver_id)
                po.approved_by = approver_id
                po.approved_at = self._clock.now()
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def place(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """
        APPROVED -> PLACED, posting the PURCHASE debit for ``total_amount``.

        Due date is the expected delivery date, else po_date plus
        ``payment_due_days``.

        Raises:
            DuplicatePostingError: the PO already has its PURCHASE posting
                (placed before).  The supplier balance is unchanged.
            InvalidPoStateError: the PO is not APPROVED.
        """
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                if po.status != PoStatus.APPROVED.value:
                    existing = self._supplier_ledger.find_purchase(po.id)
                    if existing is not None:
                        logger.warning(
                            "po_place_duplicate_blocked",
                            extra={
                                "po_id": str(po.id),
                                "po_number": po.po_number,
                                "status": po.status,
                            },
                        )
                        raise DuplicatePostingError(
                            posting_type="PURCHASE",
                            reference=po.po_number,
                            existing_id=str(existing.id),
                        )
                self._transition(po, "place", actor_id)
                po.placed_by = actor_id
                po.placed_at = self._clock.now()

                due_date = po.expected_delivery_date or (
                    po.po_date + timedelta(days=self._config.payment_due_days)
                )
                self._supplier_ledger.post_purchase(
                    supplier_id=po.supplier_id,
                    po_id=po.id,
                    po_number=po.po_number,
                    amount=po.total_amount,
                    actor_id=actor_id,
                    due_date=due_date,
                )
                supplier = self._catalog.require_supplier(po.supplier_id)
                self._session.flush()
                self._session.commit()
                placed = po.to_dto()
            except Exception:
                self._session.rollback()
                raise

            self._notify_placed(placed, supplier)
            return placed

    def _notify_placed(self, po: PurchaseOrder, supplier: SupplierInfo) -> None:
        try:
            self._notifier.notify_po_placed(po, supplier)
        except Exception:
            logger.warning(
                "po_notification_failed",
                extra={"po_id": str(po.id), "po_number": po.po_number},
                exc_info=True,
            )

    def cancel(self, po_id: UUID, actor_id: UUID, reason: str) -> PurchaseOrder:
        """
        DRAFT / APPROVED / PLACED -> CANCELLED.

        Cancelling a PLACED PO credits the supplier for the PURCHASE amount
        (ADJUSTMENT, reference ``<po_number>-CANCEL``).
        """
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                if not reason or not reason.strip():
                    raise ValidationError("cancellation reason is required", field="reason")
                po = self._load(po_id, lock=True)
                previous = self._transition(po, "cancel", actor_id)
                po.cancelled_reason = reason.strip()
                if previous == PoStatus.PLACED.value:
                    self._supplier_ledger.reverse_purchase(
                        po.id, actor_id, f"Cancelled {po.po_number}: {po.cancelled_reason}"
                    )
                self._session.flush()
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def close(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """FULLY_RECEIVED -> CLOSED."""
        with LogContext.bind(actor_id=actor_id, document_type="PurchaseOrder", document_id=po_id):
            try:
                po = self._load(po_id, lock=True)
                self._transition(po, "close", actor_id)
                self._session.commit()
                return po.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Receipt bookkeeping (flush only)
    # =========================================================================

    def require_receivable(self, po_id: UUID, action: str = "receive") -> PurchaseOrder:
        """Return the PO if goods may be received against it."""
        po = self._load(po_id)
        if po.status not in RECEIVABLE_STATES:
            raise InvalidPoStateError(
                entity_id=str(po_id),
                action=action,
                actual=po.status,
                required=RECEIVABLE_STATES,
            )
        return po.to_dto()

    def record_line_receipt(
        self,
        po_id: UUID,
        po_line_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        allow_over_receipt: bool = False,
    ) -> PurchaseOrderLine:
        """
        Add ``quantity`` to a line's received quantity.

        Raises:
            ReceiptLineMismatchError: the line is not on this PO.
            OverReceiptError: received would exceed ordered and
                ``allow_over_receipt`` is False.
        """
        if quantity <= ZERO:
            raise InvalidQuantityError(quantity, "received quantity must be positive")

        po = self._load(po_id, lock=True)
        if po.status not in RECEIVABLE_STATES:
            raise InvalidPoStateError(
                entity_id=str(po_id),
                action="receive",
                actual=po.status,
                required=RECEIVABLE_STATES,
            )
        line = next((l for l in po.lines if l.id == po_line_id), None)
        if line is None:
            raise ReceiptLineMismatchError(str(po_id), str(po_line_id))

        received = line.quantity_received + quantity
        if received > line.quantity_ordered:
            if not allow_over_receipt:
                logger.warning(
                    "po_line_over_receipt_rejected",
                    extra={
                        "po_line_id": str(line.id),
                        "quantity_ordered": line.quantity_ordered,
                        "quantity_received": line.quantity_received,
                        "attempted": quantity,
                    },
                )
                raise OverReceiptError(
                    str(line.id), line.quantity_ordered, line.quantity_received, quantity
                )
            line.over_receipt = True
            logger.warning(
                "po_line_over_receipt_allowed",
                extra={
                    "po_line_id": str(line.id),
                    "quantity_ordered": line.quantity_ordered,
                    "quantity_received": received,
                },
            )

        line.quantity_received = received
        line.touch(actor_id)
        self._session.flush()
        logger.debug(
            "po_line_receipt_recorded",
            extra={
                "po_line_id": str(line.id),
                "quantity": quantity,
                "quantity_received": received,
            },
        )
        return line.to_dto()

    def refresh_receipt_status(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """
        Derive PARTIALLY_RECEIVED / FULLY_RECEIVED from the line totals.

        Nothing changes while nothing has been received, or when the derived
        status equals the current one.
        """
        po = self._load(po_id, lock=True)
        ordered = sum((l.quantity_ordered for l in po.lines), ZERO)
        received = sum((l.quantity_received for l in po.lines), ZERO)
        if received <= ZERO:
            return po.to_dto()

        target = (
            PoStatus.FULLY_RECEIVED.value
            if received >= ordered
            else PoStatus.PARTIALLY_RECEIVED.value
        )
        if target != po.status:
            self._transition(po, "receive", actor_id, to_state=target)
            self._session.flush()
        return po.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_purchase_order(self, po_id: UUID) -> PurchaseOrder:
        return self._load(po_id).to_dto()

    def list_for_mrr(self, mrr_id: UUID) -> list[PurchaseOrder]:
        rows = self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.mrr_id == mrr_id)
            .order_by(PurchaseOrderModel.po_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]
