"""
Stock Movements Module Service (``materials_modules.stock_movements.service``).

Responsibility
--------------
Create, update and delete material issues, returns and consumption records,
each paired with the inventory ledger entry that moves the stock.

Architecture position
---------------------
**Modules layer** -- ``StockMovementService`` owns the movement tables and
funnels every quantity change through ``InventoryLedgerService``.

Invariants enforced
-------------------
* Issue and consumption take stock out (-quantity); a return puts it back
  (+quantity).  Reference ``<KIND>-<id>``.
* An update posts only the difference, (new - old) in the movement's
  direction, with reference ``<KIND>-UPDATE-<id>``.
* A delete posts the full opposite change with reference
  ``<KIND>-DELETE-<id>`` and marks the movement REVERSED.  Nothing is
  removed.
* A movement scoped to a warehouse uses that warehouse's stock; an
  unscoped one uses the (item, project) pool.
* An MRR-linked issue requires an APPROVED MRR, checked before any stock
  is touched.

Failure modes
-------------
* ``InsufficientStockError`` -- the change would take stock below zero.
  Nothing is written.
* ``InvalidMrrStateError`` -- MRR-linked issue against an unapproved MRR.
* ``InvalidMovementStateError`` -- update or delete of a reversed movement.
* ``ReferenceNotFoundError`` -- unknown item, MRR, PO, receipt or issue.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.exceptions import (
    InvalidMovementStateError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.inventory_ledger import InventoryLedgerService
from materials_modules.procurement.orm import PurchaseOrderModel
from materials_modules.receiving.orm import MaterialReceiptModel
from materials_modules.requisitions.service import MrrService
from materials_modules.stock_movements.models import (
    IssueType,
    MaterialConsumption,
    MaterialIssue,
    MaterialReturn,
    MovementKind,
    MovementStatus,
    ReturnCondition,
    ReturnType,
)
from materials_modules.stock_movements.orm import (
    MaterialConsumptionModel,
    MaterialIssueModel,
    MaterialReturnModel,
)

logger = get_logger("modules.stock_movements.service")

ZERO = Decimal("0")

Movement = MaterialIssueModel | MaterialReturnModel | MaterialConsumptionModel

_MODELS: dict[MovementKind, type] = {
    MovementKind.ISSUE: MaterialIssueModel,
    MovementKind.RETURN: MaterialReturnModel,
    MovementKind.CONSUMPTION: MaterialConsumptionModel,
}


def _quantity(value: Any) -> Decimal:
    quantity = value if isinstance(value, Decimal) else Decimal(str(value))
    if quantity <= ZERO:
        raise InvalidQuantityError(quantity, "movement quantity must be positive")
    return quantity


class StockMovementService:
    """
    Issues, returns and consumption.

    Every public method commits on success and rolls back on any exception,
    so a movement row and its inventory ledger entry always land together.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._catalog = CatalogService(session)
        self._inventory = InventoryLedgerService(session, self._clock)
        self._mrrs = MrrService(session, self._clock)

    # =========================================================================
    # Shared posting
    # =========================================================================

    def _load(self, kind: MovementKind, movement_id: UUID) -> Movement:
        model = _MODELS[kind]
        row = self._session.execute(
            select(model).where(model.id == movement_id).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise ReferenceNotFoundError(f"Material{kind.value.title()}", str(movement_id))
        return row

    @staticmethod
    def _require_active(kind: MovementKind, row: Movement, action: str) -> None:
        if row.status != MovementStatus.ACTIVE.value:
            logger.warning(
                "stock_movement_edit_rejected",
                extra={
                    "kind": kind.value,
                    "movement_id": str(row.id),
                    "action": action,
                    "status": row.status,
                },
            )
            raise InvalidMovementStateError(
                entity_id=str(row.id),
                action=action,
                actual=row.status,
                required=MovementStatus.ACTIVE.value,
            )

    def _post(
        self,
        kind: MovementKind,
        row: Movement,
        delta: Decimal,
        reference: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> None:
        self._inventory.apply_inventory_change(
            item_id=row.item_id,
            project_id=row.project_id,
            warehouse_id=row.warehouse_id,
            delta=delta,
            transaction_type=kind.transaction_type,
            reference=reference,
            actor_id=actor_id,
            description=description,
            source_id=row.id,
        )

    def _record(self, kind: MovementKind, row: Movement, actor_id: UUID) -> None:
        self._catalog.require_item(row.item_id)
        self._session.add(row)
        self._session.flush()
        self._post(
            kind,
            row,
            kind.sign * row.quantity,
            f"{kind.value}-{row.id}",
            actor_id,
            getattr(row, "purpose", None) or getattr(row, "return_reason", None),
        )
        logger.info(
            "stock_movement_created",
            extra={
                "kind": kind.value,
                "movement_id": str(row.id),
                "item_id": str(row.item_id),
                "project_id": str(row.project_id),
                "quantity": row.quantity,
            },
        )

    def _change_quantity(
        self,
        kind: MovementKind,
        row: Movement,
        quantity: Any,
        actor_id: UUID,
    ) -> None:
        quantity = _quantity(quantity)
        difference = quantity - row.quantity
        if difference == ZERO:
            return
        self._post(
            kind,
            row,
            kind.sign * difference,
            f"{kind.value}-UPDATE-{row.id}",
            actor_id,
            f"Quantity changed from {row.quantity} to {quantity}",
        )
        logger.info(
            "stock_movement_quantity_changed",
            extra={
                "kind": kind.value,
                "movement_id": str(row.id),
                "old_quantity": row.quantity,
                "new_quantity": quantity,
            },
        )
        row.quantity = quantity

    def _reverse(
        self,
        kind: MovementKind,
        movement_id: UUID,
        actor_id: UUID,
        reason: str | None,
    ) -> Movement:
        row = self._load(kind, movement_id)
        self._require_active(kind, row, "delete")
        self._post(
            kind,
            row,
            -kind.sign * row.quantity,
            f"{kind.value}-DELETE-{row.id}",
            actor_id,
            reason or f"{kind.value.title()} deleted",
        )
        row.status = MovementStatus.REVERSED.value
        row.touch(actor_id)
        self._session.flush()
        logger.info(
            "stock_movement_reversed",
            extra={
                "kind": kind.value,
                "movement_id": str(row.id),
                "quantity": row.quantity,
            },
        )
        return row

    # =========================================================================
    # Issues
    # =========================================================================

    def create_issue(
        self,
        item_id: UUID,
        project_id: UUID,
        quantity: Any,
        actor_id: UUID,
        warehouse_id: UUID | None = None,
        issue_date: date | None = None,
        purpose: str | None = None,
        location: str | None = None,
        mrr_id: UUID | None = None,
        po_id: UUID | None = None,
        receipt_id: UUID | None = None,
        component_id: UUID | None = None,
        subcontractor_id: UUID | None = None,
        issued_to: UUID | None = None,
    ) -> MaterialIssue:
        """
        Issue stock to a project.

        Raises:
            InvalidMrrStateError: ``mrr_id`` given and the MRR is not APPROVED.
            InsufficientStockError: not enough stock in the pool.
        """
        with LogContext.bind(actor_id=actor_id, document_type="MaterialIssue"):
            try:
                quantity = _quantity(quantity)
                if mrr_id is not None:
                    self._mrrs.require_approved(mrr_id, action="issue")
                if po_id is not None and self._session.get(PurchaseOrderModel, po_id) is None:
                    raise ReferenceNotFoundError("PurchaseOrder", str(po_id))
                if receipt_id is not None and self._session.get(MaterialReceiptModel, receipt_id) is None:
                    raise ReferenceNotFoundError("MaterialReceipt", str(receipt_id))

                issue = MaterialIssueModel(
                    item_id=item_id,
                    project_id=project_id,
                    warehouse_id=warehouse_id,
                    quantity=quantity,
                    issue_date=issue_date or self._clock.today(),
                    purpose=purpose,
                    location=location,
                    issue_type=(
                        IssueType.PO_ISSUE.value if po_id is not None else IssueType.STORE_ISSUE.value
                    ),
                    mrr_id=mrr_id,
                    po_id=po_id,
                    receipt_id=receipt_id,
                    component_id=component_id,
                    subcontractor_id=subcontractor_id,
                    issued_to=issued_to,
                    status=MovementStatus.ACTIVE.value,
                    created_by_id=actor_id,
                )
                self._record(MovementKind.ISSUE, issue, actor_id)
                self._session.commit()
                return issue.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def update_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        quantity: Any = None,
        purpose: str | None = None,
        location: str | None = None,
    ) -> MaterialIssue:
        """Change an issue; a quantity change posts (old - new) to stock."""
        with LogContext.bind(actor_id=actor_id, document_type="MaterialIssue", document_id=issue_id):
            try:
                issue = self._load(MovementKind.ISSUE, issue_id)
                self._require_active(MovementKind.ISSUE, issue, "update")
                if quantity is not None:
                    self._change_quantity(MovementKind.ISSUE, issue, quantity, actor_id)
                if purpose is not None:
                    issue.purpose = purpose
                if location is not None:
                    issue.location = location
                issue.touch(actor_id)
                self._session.flush()
                self._session.commit()
                return issue.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def delete_issue(
        self, issue_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> MaterialIssue:
        """Put the issued quantity back and mark the issue REVERSED."""
        with LogContext.bind(actor_id=actor_id, document_type="MaterialIssue", document_id=issue_id):
            try:
                issue = self._reverse(MovementKind.ISSUE, issue_id, actor_id, reason)
                self._session.commit()
                return issue.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def get_issue(self, issue_id: UUID) -> MaterialIssue:
        issue = self._session.get(MaterialIssueModel, issue_id)
        if issue is None:
            raise ReferenceNotFoundError("MaterialIssue", str(issue_id))
        return issue.to_dto()

    def list_issues(
        self,
        project_id: UUID | None = None,
        item_id: UUID | None = None,
        mrr_id: UUID | None = None,
        include_reversed: bool = False,
    ) -> list[MaterialIssue]:
        query = select(MaterialIssueModel)
        if project_id is not None:
            query = query.where(MaterialIssueModel.project_id == project_id)
        if item_id is not None:
            query = query.where(MaterialIssueModel.item_id == item_id)
        if mrr_id is not None:
            query = query.where(MaterialIssueModel.mrr_id == mrr_id)
        if not include_reversed:
            query = query.where(MaterialIssueModel.status == MovementStatus.ACTIVE.value)
        rows = self._session.execute(
            query.order_by(MaterialIssueModel.issue_date, MaterialIssueModel.created_at)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Returns
    # =========================================================================

    def create_return(
        self,
        item_id: UUID,
        project_id: UUID,
        quantity: Any,
        actor_id: UUID,
        warehouse_id: UUID | None = None,
        return_date: date | None = None,
        return_reason: str | None = None,
        condition_status: ReturnCondition | str = ReturnCondition.GOOD,
        return_type: ReturnType | str = ReturnType.STORE_RETURN,
        issue_id: UUID | None = None,
        po_id: UUID | None = None,
    ) -> MaterialReturn:
        """
        Return stock.  ``issue_id``, when given, must name an issue of the
        same item.
        """
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReturn"):
            try:
                quantity = _quantity(quantity)
                if issue_id is not None:
                    issue = self._session.get(MaterialIssueModel, issue_id)
                    if issue is None:
                        raise ReferenceNotFoundError("MaterialIssue", str(issue_id))
                    if issue.item_id != item_id:
                        raise ValidationError(
                            "returned item does not match the referenced issue",
                            field="item_id",
                        )
                if po_id is not None and self._session.get(PurchaseOrderModel, po_id) is None:
                    raise ReferenceNotFoundError("PurchaseOrder", str(po_id))

                material_return = MaterialReturnModel(
                    item_id=item_id,
                    project_id=project_id,
                    warehouse_id=warehouse_id,
                    quantity=quantity,
                    return_date=return_date or self._clock.today(),
                    return_reason=return_reason,
                    condition_status=ReturnCondition(condition_status).value,
                    return_type=ReturnType(return_type).value,
                    issue_id=issue_id,
                    po_id=po_id,
                    status=MovementStatus.ACTIVE.value,
                    created_by_id=actor_id,
                )
                self._record(MovementKind.RETURN, material_return, actor_id)
                self._session.commit()
                return material_return.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def update_return(
        self,
        return_id: UUID,
        actor_id: UUID,
        quantity: Any = None,
        return_reason: str | None = None,
        condition_status: ReturnCondition | str | None = None,
    ) -> MaterialReturn:
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReturn", document_id=return_id):
            try:
                material_return = self._load(MovementKind.RETURN, return_id)
                self._require_active(MovementKind.RETURN, material_return, "update")
                if quantity is not None:
                    self._change_quantity(MovementKind.RETURN, material_return, quantity, actor_id)
                if return_reason is not None:
                    material_return.return_reason = return_reason
                if condition_status is not None:
                    material_return.condition_status = ReturnCondition(condition_status).value
                material_return.touch(actor_id)
                self._session.flush()
                self._session.commit()
                return material_return.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def delete_return(
        self, return_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> MaterialReturn:
        """Take the returned quantity back out; fails if it has since been used."""
        with LogContext.bind(actor_id=actor_id, document_type="MaterialReturn", document_id=return_id):
            try:
                material_return = self._reverse(MovementKind.RETURN, return_id, actor_id, reason)
                self._session.commit()
                return material_return.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def get_return(self, return_id: UUID) -> MaterialReturn:
        material_return = self._session.get(MaterialReturnModel, return_id)
        if material_return is None:
            raise ReferenceNotFoundError("MaterialReturn", str(return_id))
        return material_return.to_dto()

    # =========================================================================
    # Consumption
    # =========================================================================

    def create_consumption(
        self,
        item_id: UUID,
        project_id: UUID,
        quantity: Any,
        actor_id: UUID,
        warehouse_id: UUID | None = None,
        consumption_date: date | None = None,
        purpose: str | None = None,
        location: str | None = None,
        component_id: UUID | None = None,
    ) -> MaterialConsumption:
        with LogContext.bind(actor_id=actor_id, document_type="MaterialConsumption"):
            try:
                consumption = MaterialConsumptionModel(
                    item_id=item_id,
                    project_id=project_id,
                    warehouse_id=warehouse_id,
                    quantity=_quantity(quantity),
                    consumption_date=consumption_date or self._clock.today(),
                    purpose=purpose,
                    location=location,
                    component_id=component_id,
                    status=MovementStatus.ACTIVE.value,
                    created_by_id=actor_id,
                )
                self._record(MovementKind.CONSUMPTION, consumption, actor_id)
                self._session.commit()
                return consumption.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def update_consumption(
        self,
        consumption_id: UUID,
        actor_id: UUID,
        quantity: Any = None,
        purpose: str | None = None,
        location: str | None = None,
    ) -> MaterialConsumption:
        with LogContext.bind(
            actor_id=actor_id, document_type="MaterialConsumption", document_id=consumption_id
        ):
            try:
                consumption = self._load(MovementKind.CONSUMPTION, consumption_id)
                self._require_active(MovementKind.CONSUMPTION, consumption, "update")
                if quantity is not None:
                    self._change_quantity(MovementKind.CONSUMPTION, consumption, quantity, actor_id)
                if purpose is not None:
                    consumption.purpose = purpose
                if location is not None:
                    consumption.location = location
                consumption.touch(actor_id)
                self._session.flush()
                self._session.commit()
                return consumption.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def delete_consumption(
        self, consumption_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> MaterialConsumption:
        with LogContext.bind(
            actor_id=actor_id, document_type="MaterialConsumption", document_id=consumption_id
        ):
            try:
                consumption = self._reverse(MovementKind.CONSUMPTION, consumption_id, actor_id, reason)
                self._session.commit()
                return consumption.to_dto()
            except Exception:
                self._session.rollback()
                raise

    def get_consumption(self, consumption_id: UUID) -> MaterialConsumption:
        consumption = self._session.get(MaterialConsumptionModel, consumption_id)
        if consumption is None:
            raise ReferenceNotFoundError("MaterialConsumption", str(consumption_id))
        return consumption.to_dto()
