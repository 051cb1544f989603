"""
Requisitions Module Service (``materials_modules.requisitions.service``).

Responsibility
--------------
Material Requirement Request lifecycle: create, edit items while DRAFT,
submit, approve or reject, and the stock check that tells the store whether
an approved MRR can be issued from stock or needs purchasing.

Architecture position
---------------------
**Modules layer** -- ``MrrService`` is the sole public entry point for MRR
operations.  Reference data checks go through the kernel
``CatalogService``; optional zero-stock record creation goes through
``InventoryLedgerService``.

Invariants enforced
-------------------
* Items are edited only while the MRR is DRAFT (``InvalidMrrStateError``).
* State changes follow ``MRR_WORKFLOW``; any other (state, action) pair
  raises ``InvalidMrrStateError`` naming the current and required states.
* ``total_estimated_cost`` is recomputed from every item after each edit.
* Each public mutating method owns the transaction boundary (``commit``
  on success, ``rollback`` on any exception).

Failure modes
-------------
* ``InvalidMrrStateError`` -- wrong state for the action.
* ``ReferenceNotFoundError`` -- unknown MRR, item, or unit.
* ``ValidationError`` / ``InvalidQuantityError`` -- bad input.

Usage::

    service = MrrService(session, clock=clock)
    mrr = service.create_mrr(
        project_id=project_id,
        requested_by=actor_id,
        items=[{"item_id": cement.id, "quantity_requested": "50"}],
    )
    service.submit(mrr.id, actor_id)
    service.approve(mrr.id, approver_id)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_config.schema import MaterialsConfig
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.exceptions import (
    InvalidMrrStateError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.models.inventory import InventoryRecordModel, make_stock_key
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.inventory_ledger import InventoryLedgerService
from materials_kernel.services.sequence_service import SequenceService
from materials_modules.requisitions.models import (
    ItemAvailability,
    Mrr,
    MrrInventoryCheck,
    MrrItemCheck,
    MrrPriority,
    MrrReadiness,
    MrrStatus,
)
from materials_modules.requisitions.orm import MrrItemModel, MrrModel
from materials_modules.requisitions.workflows import MRR_WORKFLOW

logger = get_logger("modules.requisitions.service")

ZERO = Decimal("0")

_EDITABLE = (MrrStatus.DRAFT.value,)


def _decimal(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value if value is not None else default))


class MrrService:
    """
    Orchestrates Material Requirement Requests.

    Contract
    --------
    * Mutating methods return the MRR as an ``Mrr`` DTO after commit.
    * ``require_approved`` and ``get_mrr`` are read-only and never commit;
      other services call ``require_approved`` inside their own transaction.

    Guarantees
    ----------
    * Session is committed only on success; any exception rolls back.
    * Clock is injectable for deterministic testing.
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
        self._catalog = CatalogService(session)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, mrr_id: UUID, lock: bool = False) -> MrrModel:
        query = select(MrrModel).where(MrrModel.id == mrr_id)
        if lock:
            query = query.with_for_update()
        mrr = self._session.execute(query).scalar_one_or_none()
        if mrr is None:
            raise ReferenceNotFoundError("MRR", str(mrr_id))
        return mrr

    def _require_editable(self, mrr: MrrModel, action: str) -> None:
        if mrr.status not in _EDITABLE:
            logger.warning(
                "mrr_edit_rejected",
                extra={"mrr_id": str(mrr.id), "action": action, "status": mrr.status},
            )
            raise InvalidMrrStateError(
                entity_id=str(mrr.id),
                action=action,
                actual=mrr.status,
                required=_EDITABLE,
            )

    def _build_item(self, line_number: int, data: dict[str, Any], actor_id: UUID) -> MrrItemModel:
        item_id = data.get("item_id")
        if item_id is None:
            raise ValidationError("item_id is required", field="item_id")
        self._catalog.require_item(item_id)

        unit_id = data.get("unit_id")
        if unit_id is not None:
            self._catalog.require_unit(unit_id)

        quantity = _decimal(data.get("quantity_requested"))
        if quantity <= ZERO:
            raise InvalidQuantityError(quantity, "requested quantity must be positive")
        unit_cost = _decimal(data.get("estimated_cost_per_unit"))
        if unit_cost < ZERO:
            raise InvalidQuantityError(unit_cost, "estimated cost cannot be negative")

        return MrrItemModel(
            line_number=line_number,
            item_id=item_id,
            quantity_requested=quantity,
            unit_id=unit_id,
            specifications=data.get("specifications"),
            purpose=data.get("purpose"),
            estimated_cost_per_unit=unit_cost,
            total_estimated_cost=quantity * unit_cost,
            created_by_id=actor_id,
        )

    @staticmethod
    def _recompute_total(mrr: MrrModel) -> None:
        mrr.total_estimated_cost = sum(
            (item.total_estimated_cost for item in mrr.items), ZERO
        )

    def _find_item(self, mrr: MrrModel, mrr_item_id: UUID) -> MrrItemModel:
        for item in mrr.items:
            if item.id == mrr_item_id:
                return item
        raise ReferenceNotFoundError("MrrItem", str(mrr_item_id))

    def _transition(self, mrr: MrrModel, action: str, actor_id: UUID) -> str:
        transition = MRR_WORKFLOW.require(
            action, mrr.status, mrr.id, error_cls=InvalidMrrStateError
        )
        previous = mrr.status
        mrr.status = transition.to_state
        mrr.touch(actor_id)
        logger.info(
            "mrr_status_changed",
            extra={
                "mrr_id": str(mrr.id),
                "mrr_number": mrr.mrr_number,
                "action": action,
                "from_state": previous,
                "to_state": mrr.status,
            },
        )
        return previous

    # =========================================================================
    # Create and edit
    # =========================================================================

    def create_mrr(
        self,
        project_id: UUID,
        requested_by: UUID,
        items: Sequence[dict[str, Any]] = (),
        component_id: UUID | None = None,
        subcontractor_id: UUID | None = None,
        required_date: date | None = None,
        priority: MrrPriority | str = MrrPriority.MEDIUM,
        notes: str | None = None,
        request_date: date | None = None,
    ) -> Mrr:
        """Create a DRAFT MRR with an allocated ``MRR000001``-style number."""
        with LogContext.bind(actor_id=requested_by, document_type="MRR"):
            try:
                code = self._config.mrr_code
                mrr = MrrModel(
                    mrr_number=self._sequences.next_code(
                        SequenceService.MRR, code.prefix, code.width
                    ),
                    project_id=project_id,
                    component_id=component_id,
                    subcontractor_id=subcontractor_id,
                    requested_by=requested_by,
                    request_date=request_date or self._clock.today(),
                    required_date=required_date,
                    priority=MrrPriority(priority).value,
                    status=MRR_WORKFLOW.initial_state,
                    notes=notes,
                    created_by_id=requested_by,
                )
                for number, data in enumerate(items, start=1):
                    mrr.items.append(self._build_item(number, data, requested_by))
                self._recompute_total(mrr)

                self._session.add(mrr)
                self._session.flush()
                logger.info(
                    "mrr_created",
                    extra={
                        "mrr_id": str(mrr.id),
                        "mrr_number": mrr.mrr_number,
                        "project_id": str(project_id),
                        "item_count": len(mrr.items),
                    },
                )
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def add_item(self, mrr_id: UUID, item: dict[str, Any], actor_id: UUID) -> Mrr:
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id, lock=True)
                self._require_editable(mrr, "add_item")
                next_number = max((i.line_number for i in mrr.items), default=0) + 1
                mrr.items.append(self._build_item(next_number, item, actor_id))
                self._recompute_total(mrr)
                mrr.touch(actor_id)
                self._session.flush()
                logger.info(
                    "mrr_item_added",
                    extra={"mrr_id": str(mrr.id), "line_number": next_number},
                )
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def update_item(
        self,
        mrr_id: UUID,
        mrr_item_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> Mrr:
        """Change quantity, cost or descriptive fields of one DRAFT item."""
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id, lock=True)
                self._require_editable(mrr, "update_item")
                item = self._find_item(mrr, mrr_item_id)

                merged = {
                    "item_id": item.item_id,
                    "quantity_requested": item.quantity_requested,
                    "unit_id": item.unit_id,
                    "specifications": item.specifications,
                    "purpose": item.purpose,
                    "estimated_cost_per_unit": item.estimated_cost_per_unit,
                }
                merged.update(changes)
                rebuilt = self._build_item(item.line_number, merged, actor_id)

                item.item_id = rebuilt.item_id
                item.quantity_requested = rebuilt.quantity_requested
                item.unit_id = rebuilt.unit_id
                item.specifications = rebuilt.specifications
                item.purpose = rebuilt.purpose
                item.estimated_cost_per_unit = rebuilt.estimated_cost_per_unit
                item.total_estimated_cost = rebuilt.total_estimated_cost
                item.touch(actor_id)

                self._recompute_total(mrr)
                mrr.touch(actor_id)
                self._session.flush()
                logger.info(
                    "mrr_item_updated",
                    extra={
                        "mrr_id": str(mrr.id),
                        "mrr_item_id": str(mrr_item_id),
                        "fields": sorted(changes.keys()),
                    },
                )
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def remove_item(self, mrr_id: UUID, mrr_item_id: UUID, actor_id: UUID) -> Mrr:
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id, lock=True)
                self._require_editable(mrr, "remove_item")
                mrr.items.remove(self._find_item(mrr, mrr_item_id))
                self._recompute_total(mrr)
                mrr.touch(actor_id)
                self._session.flush()
                logger.info(
                    "mrr_item_removed",
                    extra={"mrr_id": str(mrr.id), "mrr_item_id": str(mrr_item_id)},
                )
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Workflow
    # =========================================================================

    def submit(self, mrr_id: UUID, actor_id: UUID) -> Mrr:
        """DRAFT -> SUBMITTED.  The MRR must list at least one item."""
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id, lock=True)
                MRR_WORKFLOW.require("submit", mrr.status, mrr.id, error_cls=InvalidMrrStateError)
                if not mrr.items:
                    raise ValidationError("MRR must have at least one item", field="items")
                self._transition(mrr, "submit", actor_id)
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def approve(self, mrr_id: UUID, approver_id: UUID) -> Mrr:
        """SUBMITTED -> APPROVED; records approver and time."""
        with LogContext.bind(actor_id=approver_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id, lock=True)
                self._transition(mrr, "approve", approver_id)
                mrr.approved_by = approver_id
                mrr.approved_at = self._clock.now()
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def reject(self, mrr_id: UUID, actor_id: UUID, reason: str) -> Mrr:
        """SUBMITTED -> REJECTED.  A reason is required."""
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                if not reason or not reason.strip():
                    raise ValidationError("rejection reason is required", field="reason")
                mrr = self._load(mrr_id, lock=True)
                self._transition(mrr, "reject", actor_id)
                mrr.rejection_reason = reason.strip()
                self._session.commit()
                return mrr.to_dto()
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_mrr(self, mrr_id: UUID) -> Mrr:
        return self._load(mrr_id).to_dto()

    def require_approved(self, mrr_id: UUID, action: str = "reference") -> Mrr:
        """
        Return the MRR if it is APPROVED.

        Raises:
            ReferenceNotFoundError: no such MRR.
            InvalidMrrStateError: required="APPROVED", actual=<status>.
        """
        mrr = self._load(mrr_id)
        if mrr.status != MrrStatus.APPROVED.value:
            logger.warning(
                "mrr_not_approved",
                extra={"mrr_id": str(mrr_id), "action": action, "status": mrr.status},
            )
            raise InvalidMrrStateError(
                entity_id=str(mrr_id),
                action=action,
                actual=mrr.status,
                required=MrrStatus.APPROVED.value,
            )
        return mrr.to_dto()

    def check_inventory(
        self,
        mrr_id: UUID,
        actor_id: UUID,
        warehouse_id: UUID | None = None,
        create_missing: bool = False,
    ) -> MrrInventoryCheck:
        """
        Compare each item's requested quantity with stock in the MRR's
        project (and ``warehouse_id`` when given).

        Per item: AVAILABLE, INSUFFICIENT_STOCK, or NOT_IN_INVENTORY
        (CREATED_NO_STOCK when ``create_missing`` created a zero-stock
        record).  Overall: READY_FOR_ISSUE when every item is available,
        NEEDS_PURCHASE when any item had no record, else INSUFFICIENT_STOCK.
        """
        with LogContext.bind(actor_id=actor_id, document_type="MRR", document_id=mrr_id):
            try:
                mrr = self._load(mrr_id)
                inventory = InventoryLedgerService(self._session, self._clock)
                checks: list[MrrItemCheck] = []
                missing = False

                for item in mrr.items:
                    record = self._session.execute(
                        select(InventoryRecordModel).where(
                            InventoryRecordModel.stock_key
                            == make_stock_key(item.item_id, mrr.project_id, warehouse_id)
                        )
                    ).scalar_one_or_none()

                    if record is None:
                        missing = True
                        status = ItemAvailability.NOT_IN_INVENTORY
                        record_id = None
                        if create_missing:
                            dto, _ = inventory.ensure_record(
                                item.item_id, mrr.project_id, warehouse_id, actor_id
                            )
                            status = ItemAvailability.CREATED_NO_STOCK
                            record_id = dto.id
                        checks.append(
                            MrrItemCheck(
                                mrr_item_id=item.id,
                                item_id=item.item_id,
                                quantity_requested=item.quantity_requested,
                                available_quantity=ZERO,
                                status=status,
                                record_id=record_id,
                            )
                        )
                        continue

                    checks.append(
                        MrrItemCheck(
                            mrr_item_id=item.id,
                            item_id=item.item_id,
                            quantity_requested=item.quantity_requested,
                            available_quantity=record.quantity_on_hand,
                            status=(
                                ItemAvailability.AVAILABLE
                                if record.quantity_on_hand >= item.quantity_requested
                                else ItemAvailability.INSUFFICIENT_STOCK
                            ),
                            record_id=record.id,
                        )
                    )

                if all(c.status is ItemAvailability.AVAILABLE for c in checks):
                    readiness = MrrReadiness.READY_FOR_ISSUE
                elif missing:
                    readiness = MrrReadiness.NEEDS_PURCHASE
                else:
                    readiness = MrrReadiness.INSUFFICIENT_STOCK

                result = MrrInventoryCheck(
                    mrr_id=mrr.id, readiness=readiness, items=tuple(checks)
                )
                logger.info(
                    "mrr_inventory_checked",
                    extra={
                        "mrr_id": str(mrr.id),
                        "readiness": readiness.value,
                        "available": result.count(ItemAvailability.AVAILABLE),
                        "insufficient": result.count(ItemAvailability.INSUFFICIENT_STOCK),
                        "not_in_inventory": result.count(ItemAvailability.NOT_IN_INVENTORY),
                        "created": result.count(ItemAvailability.CREATED_NO_STOCK),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise
