"""
SQLAlchemy ORM persistence models for the Stock Movements module.

Responsibility
--------------
Persistence for material issues, returns and consumption records.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``StockMovementService``.

Invariants enforced
-------------------
* quantity > 0 (the sign lives in the inventory ledger entry).
* Rows are never deleted; a reversed movement has status REVERSED.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_modules.stock_movements.models import (
    IssueType,
    MaterialConsumption,
    MaterialIssue,
    MaterialReturn,
    MovementStatus,
    ReturnCondition,
    ReturnType,
)

# ---------------------------------------------------------------------------
# MaterialIssueModel
# ---------------------------------------------------------------------------


class MaterialIssueModel(TrackedBase):
    """Stock issued to a project (optionally against an MRR or PO)."""

    __tablename__ = "material_issues"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_issue_quantity_positive"),
        Index("idx_issue_item_project", "item_id", "project_id"),
        Index("idx_issue_mrr", "mrr_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=IssueType.STORE_ISSUE.value
    )
    mrr_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("material_requirement_requests.id"), nullable=True
    )
    po_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True
    )
    receipt_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("material_receipts.id"), nullable=True
    )
    component_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    subcontractor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    issued_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=MovementStatus.ACTIVE.value
    )

    def to_dto(self) -> MaterialIssue:
        return MaterialIssue(
            id=self.id,
            item_id=self.item_id,
            project_id=self.project_id,
            quantity=self.quantity,
            issue_date=self.issue_date,
            status=MovementStatus(self.status),
            issue_type=IssueType(self.issue_type),
            warehouse_id=self.warehouse_id,
            purpose=self.purpose,
            location=self.location,
            mrr_id=self.mrr_id,
            po_id=self.po_id,
            receipt_id=self.receipt_id,
            component_id=self.component_id,
            subcontractor_id=self.subcontractor_id,
            issued_to=self.issued_to,
            issued_by=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<MaterialIssueModel {self.id} qty={self.quantity} [{self.status}]>"


# ---------------------------------------------------------------------------
# MaterialReturnModel
# ---------------------------------------------------------------------------


class MaterialReturnModel(TrackedBase):
    """Stock returned, optionally tracing back to the issue it reverses."""

    __tablename__ = "material_returns"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_return_quantity_positive"),
        Index("idx_return_item_project", "item_id", "project_id"),
        Index("idx_return_issue", "issue_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    return_date: Mapped[date] = mapped_column(Date, nullable=False)
    return_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReturnCondition.GOOD.value
    )
    return_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReturnType.STORE_RETURN.value
    )
    issue_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("material_issues.id"), nullable=True
    )
    po_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=MovementStatus.ACTIVE.value
    )

    def to_dto(self) -> MaterialReturn:
        return MaterialReturn(
            id=self.id,
            item_id=self.item_id,
            project_id=self.project_id,
            quantity=self.quantity,
            return_date=self.return_date,
            status=MovementStatus(self.status),
            return_type=ReturnType(self.return_type),
            condition_status=ReturnCondition(self.condition_status),
            warehouse_id=self.warehouse_id,
            return_reason=self.return_reason,
            issue_id=self.issue_id,
            po_id=self.po_id,
            returned_by=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<MaterialReturnModel {self.id} qty={self.quantity} [{self.status}]>"


# ---------------------------------------------------------------------------
# MaterialConsumptionModel
# ---------------------------------------------------------------------------


class MaterialConsumptionModel(TrackedBase):
    __tablename__ = "material_consumptions"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_consumption_quantity_positive"),
        Index("idx_consumption_item_project", "item_id", "project_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    consumption_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    component_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=MovementStatus.ACTIVE.value
    )

    def to_dto(self) -> MaterialConsumption:
        return MaterialConsumption(
            id=self.id,
            item_id=self.item_id,
            project_id=self.project_id,
            quantity=self.quantity,
            consumption_date=self.consumption_date,
            status=MovementStatus(self.status),
            warehouse_id=self.warehouse_id,
            purpose=self.purpose,
            location=self.location,
            component_id=self.component_id,
            recorded_by=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<MaterialConsumptionModel {self.id} qty={self.quantity} [{self.status}]>"
