"""
SQLAlchemy ORM persistence models for the Receiving module.

Responsibility
--------------
Persistence for material receipts (goods received notes) and their lines.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``MaterialReceiptService``.

Invariants enforced
-------------------
* ``receipt_number`` is unique.
* ``inventory_posted_by`` is NULL until stock posts, then ``verify`` or
  ``complete``; it is written once.
* Every line references a line of the receipt's own PO (checked by the
  service, FK-backed here).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_modules.receiving.models import (
    MaterialReceipt,
    MaterialReceiptLine,
    PostingTrigger,
    ReceiptCondition,
    ReceiptStatus,
)

# ---------------------------------------------------------------------------
# MaterialReceiptModel
# ---------------------------------------------------------------------------


class MaterialReceiptModel(TrackedBase):
    """
    A material receipt against one purchase order.

    Maps to the ``MaterialReceipt`` DTO.  Status follows
    MATERIAL_RECEIPT_WORKFLOW.
    """

    __tablename__ = "material_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_receipt_number"),
        CheckConstraint(
            "inventory_posted_by IS NULL OR inventory_posted_by IN ('verify', 'complete')",
            name="ck_receipt_posted_by",
        ),
        Index("idx_receipt_po", "po_id"),
        Index("idx_receipt_status", "status"),
    )

    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    po_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    verified_at: Mapped[datetime | None]
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    supplier_delivery_note: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    driver_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReceiptStatus.PENDING.value
    )
    condition_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReceiptCondition.GOOD.value
    )
    inventory_posted_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    completed_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["MaterialReceiptLineModel"]] = relationship(
        "MaterialReceiptLineModel",
        back_populates="receipt",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MaterialReceiptLineModel.line_number",
    )

    def to_dto(self) -> MaterialReceipt:
        return MaterialReceipt(
            id=self.id,
            receipt_number=self.receipt_number,
            po_id=self.po_id,
            received_date=self.received_date,
            received_by=self.received_by,
            status=ReceiptStatus(self.status),
            condition_status=ReceiptCondition(self.condition_status),
            project_id=self.project_id,
            warehouse_id=self.warehouse_id,
            delivery_date=self.delivery_date,
            verified_by=self.verified_by,
            verified_at=self.verified_at,
            verification_notes=self.verification_notes,
            supplier_delivery_note=self.supplier_delivery_note,
            vehicle_number=self.vehicle_number,
            driver_name=self.driver_name,
            inventory_posted_by=(
                PostingTrigger(self.inventory_posted_by)
                if self.inventory_posted_by
                else None
            ),
            completed_at=self.completed_at,
            rejection_reason=self.rejection_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<MaterialReceiptModel {self.receipt_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# MaterialReceiptLineModel
# ---------------------------------------------------------------------------


class MaterialReceiptLineModel(TrackedBase):
    """One received PO line: claimed, counted and verified quantities."""

    __tablename__ = "material_receipt_lines"

    __table_args__ = (
        UniqueConstraint("receipt_id", "line_number", name="uq_receipt_line_number"),
        CheckConstraint("quantity_received >= 0", name="ck_receipt_line_quantity"),
        Index("idx_receipt_line_receipt", "receipt_id"),
        Index("idx_receipt_line_po_line", "po_line_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_receipts.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    po_line_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_order_lines.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_actually_received: Mapped[Decimal | None]
    verified_quantity: Mapped[Decimal | None]
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    condition_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ReceiptCondition.GOOD.value
    )
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cgst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sgst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    igst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    over_receipt: Mapped[bool] = mapped_column(default=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    receipt: Mapped["MaterialReceiptModel"] = relationship(
        "MaterialReceiptModel",
        back_populates="lines",
    )

    def to_dto(self) -> MaterialReceiptLine:
        return MaterialReceiptLine(
            id=self.id,
            receipt_id=self.receipt_id,
            line_number=self.line_number,
            po_line_id=self.po_line_id,
            item_id=self.item_id,
            quantity_received=self.quantity_received,
            unit_price=self.unit_price,
            line_total=self.line_total,
            quantity_actually_received=self.quantity_actually_received,
            verified_quantity=self.verified_quantity,
            condition_status=ReceiptCondition(self.condition_status),
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            cgst_rate=self.cgst_rate,
            sgst_rate=self.sgst_rate,
            igst_rate=self.igst_rate,
            over_receipt=self.over_receipt,
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return (
            f"<MaterialReceiptLineModel #{self.line_number} "
            f"claimed={self.quantity_received} verified={self.verified_quantity}>"
        )
