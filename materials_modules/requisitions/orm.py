"""
SQLAlchemy ORM persistence models for the Requisitions module.

Responsibility
--------------
Persistence for Material Requirement Requests and their items.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``MrrService``.  Inherits from
``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantity and money fields use ``Decimal`` (Numeric(38,9)) -- never float.
* Enum fields stored as String(50) holding the enum value.
* ``mrr_number`` is unique.
* ``MrrItemModel`` belongs to exactly one ``MrrModel``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_modules.requisitions.models import (
    Mrr,
    MrrItem,
    MrrPriority,
    MrrStatus,
)

# ---------------------------------------------------------------------------
# MrrModel
# ---------------------------------------------------------------------------


class MrrModel(TrackedBase):
    """
    A Material Requirement Request.

    Maps to the ``Mrr`` DTO.  Status follows MRR_WORKFLOW:
    DRAFT -> SUBMITTED -> APPROVED | REJECTED.
    """

    __tablename__ = "material_requirement_requests"

    __table_args__ = (
        UniqueConstraint("mrr_number", name="uq_mrr_number"),
        Index("idx_mrr_project", "project_id"),
        Index("idx_mrr_status", "status"),
    )

    mrr_number: Mapped[str] = mapped_column(String(50), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    component_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    subcontractor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    requested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    request_date: Mapped[date] = mapped_column(Date, nullable=False)
    required_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(50), nullable=False, default=MrrPriority.MEDIUM.value
    )
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=MrrStatus.DRAFT.value
    )
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_estimated_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    items: Mapped[list["MrrItemModel"]] = relationship(
        "MrrItemModel",
        back_populates="mrr",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MrrItemModel.line_number",
    )

    def to_dto(self) -> Mrr:
        return Mrr(
            id=self.id,
            mrr_number=self.mrr_number,
            project_id=self.project_id,
            requested_by=self.requested_by,
            request_date=self.request_date,
            status=MrrStatus(self.status),
            priority=MrrPriority(self.priority),
            component_id=self.component_id,
            subcontractor_id=self.subcontractor_id,
            required_date=self.required_date,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            notes=self.notes,
            total_estimated_cost=self.total_estimated_cost,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<MrrModel {self.mrr_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# MrrItemModel
# ---------------------------------------------------------------------------


class MrrItemModel(TrackedBase):
    """One requested material on an MRR."""

    __tablename__ = "mrr_items"

    __table_args__ = (
        Index("idx_mrr_item_mrr", "mrr_id"),
        Index("idx_mrr_item_item", "item_id"),
    )

    mrr_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_requirement_requests.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    quantity_requested: Mapped[Decimal] = mapped_column(nullable=False)
    unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=True
    )
    specifications: Mapped[str | None] = mapped_column(Text, nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(500), nullable=True)
    estimated_cost_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_estimated_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    mrr: Mapped["MrrModel"] = relationship(
        "MrrModel",
        back_populates="items",
    )

    def to_dto(self) -> MrrItem:
        return MrrItem(
            id=self.id,
            mrr_id=self.mrr_id,
            line_number=self.line_number,
            item_id=self.item_id,
            quantity_requested=self.quantity_requested,
            unit_id=self.unit_id,
            specifications=self.specifications,
            purpose=self.purpose,
            estimated_cost_per_unit=self.estimated_cost_per_unit,
            total_estimated_cost=self.total_estimated_cost,
        )

    def __repr__(self) -> str:
        return f"<MrrItemModel #{self.line_number} qty={self.quantity_requested}>"
