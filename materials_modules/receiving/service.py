"""
Receiving Module Service (``materials_modules.receiving.service``).

Responsibility
--------------
Material receipt lifecycle: record the delivery paperwork, count what
actually arrived, verify it (the step that puts stock on the shelf), and
close the receipt out.

Architecture position
---------------------
**Modules layer** -- ``MaterialReceiptService`` owns the receipt tables.
Stock changes go through the kernel ``InventoryLedgerService``; PO line
received quantities and the PO receiving status go through
``PurchaseOrderService`` (flush-only methods, same transaction).

Invariants enforced
-------------------
* Creating and receiving a receipt write no inventory ledger entries and
  leave PO line quantities untouched.
* Stock posts exactly once per receipt: at ``verify``, or at ``complete``
  from RECEIVED when the policy is ``VERIFY_OR_COMPLETE``.  The trigger is
  recorded in ``inventory_posted_by``; a second attempt raises
  ``AlreadyProcessedError``.
* One inventory ledger entry (PURCHASE, reference = receipt number) per
  line with a positive posted quantity.
* With ``one_receipt_per_po`` a PO has at most one non-rejected receipt.

Failure modes
-------------
* ``ReceiptLineMismatchError`` -- a line references a PO line of another PO.
* ``AlreadyProcessedError`` -- stock already posted for the receipt.
* ``DuplicatePostingError`` -- second receipt for a PO.
* ``OverReceiptError`` -- verified quantity exceeds what is outstanding.
* ``InvalidReceiptStateError`` / ``InvalidPoStateError`` -- wrong state.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_config.schema import MaterialsConfig
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import InventoryTransactionType
from materials_kernel.domain.tax import GstRates
from materials_kernel.exceptions import (
    AlreadyProcessedError,
    DuplicatePostingError,
    InvalidPoStateError,
    InvalidQuantityError,
    InvalidReceiptStateError,
    ReceiptLineMismatchError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.services.inventory_ledger import InventoryLedgerService
from materials_kernel.services.sequence_service import SequenceService
from materials_modules.procurement.models import PoStatus
from materials_modules.procurement.service import PurchaseOrderService
from materials_modules.receiving.models import (
    MaterialReceipt,
    PostingTrigger,
    ReceiptCondition,
    ReceiptStatus,
)
from materials_modules.receiving.orm import MaterialReceiptLineModel, MaterialReceiptModel
from materials_modules.receiving.workflows import MATERIAL_RECEIPT_WORKFLOW

logger = get_logger("modules.receiving.service")

ZERO = Decimal("0")

# Receipt paperwork may be raised before the PO is placed; stock is only
# posted once it is placed (see _post_stock)
_FIRST_RECEIPT_STATES = (PoStatus.APPROVED.value, PoStatus.PLACED.value)
_FOLLOW_UP_RECEIPT_STATES = _FIRST_RECEIPT_STATES + (PoStatus.PARTIALLY_RECEIVED.value,)


def _decimal(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value if value is not None else default))


def _counted_quantity(line: MaterialReceiptLineModel) -> Decimal:
    """Quantity a line posts when nobody overrides it; rejected lines post nothing."""
    if line.condition_status == ReceiptCondition.REJECTED.value:
        return ZERO
    if line.quantity_actually_received is not None:
        return line.quantity_actually_received
    return line.quantity_received


class MaterialReceiptService:
    """
    Orchestrates material receipts.

    Contract
    --------
    * Public methods return a ``MaterialReceipt`` DTO after commit.
    * ``verify`` and ``complete`` are the only methods that touch stock.

    Guarantees
    ----------
    * Stock, PO line quantities, PO status and the receipt status commit
      together or not at all.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MaterialsConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or MaterialsConfig()
        self._sequences = SequenceService(session)
        self._inventory = InventoryLedgerService(session, self._clock)
        self._purchase_orders = PurchaseOrderService(session, self._clock, self._config)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, receipt_id: UUID, lock: bool = False) -> MaterialReceiptModel:
        query = select(MaterialReceiptModel).where(MaterialReceiptModel.id == receipt_id)
        if lock:
            query = query.with_for_update()
        receipt = self._session.execute(query).scalar_one_or_none()
        if receipt is None:
            raise ReferenceNotFoundError("MaterialReceipt", str(receipt_id))
        return receipt

    def _find_line(
        self, receipt: MaterialReceiptModel, line_id: UUID
    ) -> MaterialReceiptLineModel:
        for line in receipt.lines:
            if line.id == line_id:
                return line
        raise ReferenceNotFoundError("MaterialReceiptLine", str(line_id))

    def _transition(
        self,
        receipt: MaterialReceiptModel,
        action: str,
        actor_id: UUID,
        to_state: str | None = None,
    ) -> str:
        transition = MATERIAL_RECEIPT_WORKFLOW.require(
            action,
            receipt.status,
            receipt.id,
            error_cls=InvalidReceiptStateError,
            to_state=to_state,
        )
        previous = receipt.status
        receipt.status = transition.to_state
        receipt.touch(actor_id)
        logger.info(
            "receipt_status_changed",
            extra={
                "receipt_id": str(receipt.id),
                "receipt_number": receipt.receipt_number,
                "action": action,
                "from_state": previous,
                "to_state": receipt.status,
            },
        )
        return previous

    @staticmethod
    def _require_not_posted(receipt: MaterialReceiptModel, action: str) -> None:
        if receipt.inventory_posted_by is not None:
            logger.warning(
                "receipt_already_processed",
                extra={
                    "receipt_id": str(receipt.id),
                    "action": action,
                    "posted_by": receipt.inventory_posted_by,
                },
            )
            raise AlreadyProcessedError(str(receipt.id), receipt.inventory_posted_by)

    def _post_stock(
        self,
        receipt: MaterialReceiptModel,
        quantities: Mapping[UUID, Decimal],
        actor_id: UUID,
        trigger: PostingTrigger,
        allow_over_receipt: bool,
    ) -> int:
        """
        Post ``quantities`` (receipt line id -> quantity) to stock and to the
        PO lines, then refresh the PO receiving status.  Returns the number
        of inventory entries written.
        """
        po = self._purchase_orders.require_receivable(receipt.po_id, action=trigger.value)
        posted = 0
        for line in receipt.lines:
            quantity = quantities.get(line.id, ZERO)
            if quantity <= ZERO:
                continue
            po_line = self._purchase_orders.record_line_receipt(
                receipt.po_id,
                line.po_line_id,
                quantity,
                actor_id,
                allow_over_receipt=allow_over_receipt,
            )
            if po_line.quantity_received > po_line.quantity_ordered:
                line.over_receipt = True
            self._inventory.apply_inventory_change(
                item_id=line.item_id,
                project_id=receipt.project_id,
                warehouse_id=receipt.warehouse_id,
                delta=quantity,
                transaction_type=InventoryTransactionType.PURCHASE,
                reference=receipt.receipt_number,
                actor_id=actor_id,
                description=f"Material receipt {receipt.receipt_number} for {po.po_number}",
                source_id=receipt.id,
                unit_cost=line.unit_price,
            )
            posted += 1

        self._purchase_orders.refresh_receipt_status(receipt.po_id, actor_id)
        receipt.inventory_posted_by = trigger.value
        self._session.flush()
        logger.info(
            "receipt_stock_posted",
            extra={
                "receipt_id": str(receipt.id),
                "receipt_number": receipt.receipt_number,
                "po_id": str(receipt.po_id),
                "posted_by": trigger.value,
                "entry_count": posted,
            },
        )
        return posted

    # =========================================================================
    # Create and receive
    # =========================================================================

    def create_receipt(
        self,
        po_id: UUID,
        received_by: UUID,
        lines: Sequence[dict[str, Any]] | None = None,
        warehouse_id: UUID | None = None,
        received_date: date | None = None,
        delivery_date: date | None = None,
        supplier_delivery_note: str | None = None,
        vehicle_number: str | None = None,
        driver_name: str | None = None,
    ) -> MaterialReceipt:
        """
        Create a PENDING receipt for a PO.

        Each line dict names ``po_line_id`` and ``quantity_received`` and may
        override ``unit_price`` and the GST rates (inherited from the PO
        line otherwise).  When ``lines`` is None every PO line with an
        outstanding quantity is listed at that quantity.

        Nothing is posted to stock and PO line quantities are untouched.
        """
        with LogContext.bind(actor_id=received_by, document_type="MaterialReceipt"):
            try:
                po = self._purchase_orders.get_purchase_order(po_id)
                allowed = (
                    _FIRST_RECEIPT_STATES
                    if self._config.one_receipt_per_po
                    else _FOLLOW_UP_RECEIPT_STATES
                )
                if po.status.value not in allowed:
                    raise InvalidPoStateError(
                        entity_id=str(po_id),
                        action="create_receipt",
                        actual=po.status.value,
                        required=allowed,
                    )

                if self._config.one_receipt_per_po:
                    existing = self._session.execute(
                        select(MaterialReceiptModel.id).where(
                            MaterialReceiptModel.po_id == po_id,
                            MaterialReceiptModel.status != ReceiptStatus.REJECTED.value,
                        )
                    ).scalars().first()
                    if existing is not None:
                        logger.warning(
                            "receipt_duplicate_blocked",
                            extra={"po_id": str(po_id), "existing_receipt_id": str(existing)},
                        )
                        raise DuplicatePostingError(
                            posting_type="MATERIAL_RECEIPT",
                            reference=po.po_number,
                            existing_id=str(existing),
                        )

                po_lines = {line.id: line for line in po.lines}
                if lines is None:
                    lines = [
                        {"po_line_id": line.id, "quantity_received": line.quantity_outstanding}
                        for line in po.lines
                        if line.quantity_outstanding > ZERO
                    ]
                if not lines:
                    raise ValidationError("receipt must have at least one line", field="lines")

                code = self._config.receipt_code
                receipt = MaterialReceiptModel(
                    receipt_number=self._sequences.next_code(
                        SequenceService.MATERIAL_RECEIPT, code.prefix, code.width
                    ),
                    po_id=po.id,
                    project_id=po.project_id,
                    warehouse_id=warehouse_id,
                    received_date=received_date or self._clock.today(),
                    delivery_date=delivery_date,
                    received_by=received_by,
                    supplier_delivery_note=supplier_delivery_note,
                    vehicle_number=vehicle_number,
                    driver_name=driver_name,
                    status=MATERIAL_RECEIPT_WORKFLOW.initial_state,
                    condition_status=ReceiptCondition.GOOD.value,
                    created_by_id=received_by,
                )

                for number, data in enumerate(lines, start=1):
                    po_line_id = data.get("po_line_id")
                    po_line = po_lines.get(po_line_id)
                    if po_line is None:
                        logger.warning(
                            "receipt_line_mismatch",
                            extra={"po_id": str(po_id), "po_line_id": str(po_line_id)},
                        )
                        raise ReceiptLineMismatchError(str(po_id), str(po_line_id))

                    quantity = _decimal(data.get("quantity_received"))
                    if quantity < ZERO:
                        raise InvalidQuantityError(quantity, "received quantity cannot be negative")
                    unit_price = _decimal(data.get("unit_price", po_line.unit_price))
                    rates = GstRates(
                        cgst_rate=data.get("cgst_rate", po_line.cgst_rate),
                        sgst_rate=data.get("sgst_rate", po_line.sgst_rate),
                        igst_rate=data.get("igst_rate", po_line.igst_rate),
                    )
                    receipt.lines.append(
                        MaterialReceiptLineModel(
                            line_number=number,
                            po_line_id=po_line.id,
                            item_id=po_line.item_id,
                            quantity_received=quantity,
                            unit_price=unit_price,
                            line_total=quantity * unit_price,
                            condition_status=ReceiptCondition(
                                data.get("condition_status", ReceiptCondition.GOOD)
                            ).value,
                            batch_number=data.get("batch_number"),
                            expiry_date=data.get("expiry_date"),
                            cgst_rate=rates.cgst_rate,
                            sgst_rate=rates.sgst_rate,
                            igst_rate=rates.igst_rate,
                            remarks=data.get("remarks"),
                            created_by_id=received_by,
                        )
                    )

                self._session.add(receipt)
                self._session.flush()
                logger.info(
                    "receipt_created",
                    extra={
                        "receipt_id": str(receipt.id),
                        "receipt_number": receipt.receipt_number,
                        "po_id": str(po_id),
                        "line_count": len(receipt.lines),
                    },
                )
                self._session.commit()
                return receipt.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def receive(
        self,
        receipt_id: UUID,
        actor_id: UUID,
        line_updates: Mapping[UUID, dict[str, Any]] | None = None,
        delivery_date: date | None = None,
        condition_status: ReceiptCondition | str | None = None,
    ) -> MaterialReceipt:
        """
        PENDING -> RECEIVED: record what physically arrived.

        ``line_updates`` maps receipt line id to any of
        ``quantity_actually_received``, ``condition_status``,
        ``batch_number``, ``expiry_date``.  Lines not mentioned are taken
        as received in full.  Overall condition, when not given, is
        DAMAGED if any line is damaged, PARTIAL if any line came short,
        else GOOD.  No stock is posted.
        """
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReceipt", document_id=receipt_id):
            try:
                receipt = self._load(receipt_id, lock=True)
                MATERIAL_RECEIPT_WORKFLOW.require(
                    "receive", receipt.status, receipt.id, error_cls=InvalidReceiptStateError
                )
                updates = dict(line_updates or {})
                for line_id in updates:
                    self._find_line(receipt, line_id)

                short = damaged = False
                for line in receipt.lines:
                    data = updates.get(line.id, {})
                    actual = _decimal(
                        data.get("quantity_actually_received", line.quantity_received)
                    )
                    if actual < ZERO:
                        raise InvalidQuantityError(actual, "received quantity cannot be negative")
                    line.quantity_actually_received = actual
                    line.condition_status = ReceiptCondition(
                        data.get("condition_status", line.condition_status)
                    ).value
                    if "batch_number" in data:
                        line.batch_number = data["batch_number"]
                    if "expiry_date" in data:
                        line.expiry_date = data["expiry_date"]
                    line.touch(actor_id)
                    short = short or actual < line.quantity_received
                    damaged = damaged or line.condition_status == ReceiptCondition.DAMAGED.value

                if condition_status is None:
                    if damaged:
                        condition_status = ReceiptCondition.DAMAGED
                    elif short:
                        condition_status = ReceiptCondition.PARTIAL
                    else:
                        condition_status = ReceiptCondition.GOOD
                receipt.condition_status = ReceiptCondition(condition_status).value
                if delivery_date is not None:
                    receipt.delivery_date = delivery_date

                self._transition(receipt, "receive", actor_id)
                self._session.flush()
                self._session.commit()
                return receipt.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Posting transitions
    # =========================================================================

    def verify(
        self,
        receipt_id: UUID,
        verifier_id: UUID,
        verified_quantities: Mapping[UUID, Any] | None = None,
        notes: str | None = None,
        allow_over_receipt: bool | None = None,
    ) -> MaterialReceipt:
        """
        PENDING / RECEIVED -> APPROVED, posting verified stock.

        ``verified_quantities`` maps receipt line id to the verified
        quantity; unlisted lines verify at their counted quantity (or the
        claimed one when never counted), and at zero when their condition
        is REJECTED.  Lines verified at zero post nothing.

        Raises:
            AlreadyProcessedError: stock was already posted for this receipt.
            InvalidPoStateError: the PO has not been placed yet.
            OverReceiptError: a PO line would exceed its ordered quantity
                and over-receipt is not allowed.
        """
        with LogContext.bind(actor_id=verifier_id, document_type="MaterialReceipt", document_id=receipt_id):
            try:
                receipt = self._load(receipt_id, lock=True)
                self._require_not_posted(receipt, "verify")
                MATERIAL_RECEIPT_WORKFLOW.require(
                    "verify", receipt.status, receipt.id, error_cls=InvalidReceiptStateError
                )

                given = dict(verified_quantities or {})
                for line_id in given:
                    self._find_line(receipt, line_id)

                quantities: dict[UUID, Decimal] = {}
                for line in receipt.lines:
                    if line.id in given:
                        quantity = _decimal(given[line.id])
                    else:
                        quantity = _counted_quantity(line)
                    if quantity < ZERO:
                        raise InvalidQuantityError(quantity, "verified quantity cannot be negative")
                    line.verified_quantity = quantity
                    line.touch(verifier_id)
                    quantities[line.id] = quantity

                if allow_over_receipt is None:
                    allow_over_receipt = self._config.allow_over_receipt
                self._post_stock(
                    receipt, quantities, verifier_id, PostingTrigger.VERIFY, allow_over_receipt
                )

                self._transition(receipt, "verify", verifier_id)
                receipt.verified_by = verifier_id
                receipt.verified_at = self._clock.now()
                receipt.verification_notes = notes
                self._session.flush()
                self._session.commit()
                return receipt.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def complete(self, receipt_id: UUID, actor_id: UUID) -> MaterialReceipt:
        """
        Close the receipt.

        From APPROVED nothing is posted.  From RECEIVED, allowed only under
        ``VERIFY_OR_COMPLETE``, the counted quantities are posted exactly as
        ``verify`` would have.

        Raises:
            AlreadyProcessedError: the receipt is already COMPLETED.
            InvalidReceiptStateError: RECEIVED under the VERIFY policy, or
                any other state.
            InvalidPoStateError: posting against a PO that is not yet placed.
        """
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReceipt", document_id=receipt_id):
            try:
                receipt = self._load(receipt_id, lock=True)
                if receipt.status == ReceiptStatus.COMPLETED.value:
                    self._require_not_posted(receipt, "complete")

                if receipt.status == ReceiptStatus.RECEIVED.value:
                    if not self._config.complete_may_post:
                        raise InvalidReceiptStateError(
                            entity_id=str(receipt.id),
                            action="complete",
                            actual=receipt.status,
                            required=ReceiptStatus.APPROVED.value,
                        )
                    self._require_not_posted(receipt, "complete")
                    quantities = {}
                    for line in receipt.lines:
                        quantity = _counted_quantity(line)
                        line.verified_quantity = quantity
                        quantities[line.id] = quantity
                    self._post_stock(
                        receipt,
                        quantities,
                        actor_id,
                        PostingTrigger.COMPLETE,
                        self._config.allow_over_receipt,
                    )

                self._transition(receipt, "complete", actor_id)
                receipt.completed_at = self._clock.now()
                self._session.flush()
                self._session.commit()
                return receipt.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def reject(self, receipt_id: UUID, actor_id: UUID, reason: str) -> MaterialReceipt:
        """PENDING / RECEIVED -> REJECTED.  Nothing was posted, nothing is reversed."""
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReceipt", document_id=receipt_id):
            try:
                if not reason or not reason.strip():
                    raise ValidationError("rejection reason is required", field="reason")
                receipt = self._load(receipt_id, lock=True)
                self._transition(receipt, "reject", actor_id)
                receipt.rejection_reason = reason.strip()
                receipt.condition_status = ReceiptCondition.REJECTED.value
                self._session.commit()
                return receipt.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_receipt(self, receipt_id: UUID) -> MaterialReceipt:
        return self._load(receipt_id).to_dto()

    def list_for_po(self, po_id: UUID) -> list[MaterialReceipt]:
        rows = self._session.execute(
            select(MaterialReceiptModel)
            .where(MaterialReceiptModel.po_id == po_id)
            .order_by(MaterialReceiptModel.receipt_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]
