"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Persistence for purchase orders and purchase order lines.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``PurchaseOrderService`` and,
for line receipt quantities, by ``MaterialReceiptService`` through it.

Invariants enforced
-------------------
* All money, rate and quantity fields use ``Decimal`` (Numeric(38,9)).
* ``po_number`` is unique; line numbers are unique within a PO.
* quantity_ordered > 0, unit_price >= 0, rates within [0, 100]
  (CHECK constraints backing the service validation).
* Header totals are always recomputed from the complete line set by the
  service; they are never adjusted incrementally.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_modules.procurement.models import (
    PoStatus,
    PurchaseOrder,
    PurchaseOrderLine,
)

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order.

    Maps to the ``PurchaseOrder`` DTO.  Status follows
    PURCHASE_ORDER_WORKFLOW.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_po_number"),
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_project", "project_id"),
        Index("idx_po_mrr", "mrr_id"),
        Index("idx_po_status", "status"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    mrr_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("material_requirement_requests.id"), nullable=True
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    po_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=PoStatus.DRAFT.value
    )

    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cgst_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sgst_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    igst_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    payment_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delivery_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]
    placed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    placed_at: Mapped[datetime | None]
    cancelled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_number",
    )

    def to_dto(self) -> PurchaseOrder:
        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            supplier_id=self.supplier_id,
            po_date=self.po_date,
            status=PoStatus(self.status),
            mrr_id=self.mrr_id,
            project_id=self.project_id,
            expected_delivery_date=self.expected_delivery_date,
            subtotal=self.subtotal,
            cgst_total=self.cgst_total,
            sgst_total=self.sgst_total,
            igst_total=self.igst_total,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            payment_terms=self.payment_terms,
            delivery_terms=self.delivery_terms,
            notes=self.notes,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            placed_by=self.placed_by,
            placed_at=self.placed_at,
            cancelled_reason=self.cancelled_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} [{self.status}] total={self.total_amount}>"


# ---------------------------------------------------------------------------
# PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderLineModel(TrackedBase):
    """One ordered item, with its GST rates and computed amounts."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
        CheckConstraint("quantity_ordered > 0", name="ck_po_line_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_po_line_price_non_negative"),
        CheckConstraint("cgst_rate >= 0 AND cgst_rate <= 100", name="ck_po_line_cgst_rate"),
        CheckConstraint("sgst_rate >= 0 AND sgst_rate <= 100", name="ck_po_line_sgst_rate"),
        CheckConstraint("igst_rate >= 0 AND igst_rate <= 100", name="ck_po_line_igst_rate"),
        Index("idx_po_line_po", "purchase_order_id"),
        Index("idx_po_line_item", "item_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=True
    )
    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    cgst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sgst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    igst_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cgst_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    over_receipt: Mapped[bool] = mapped_column(default=False)
    specifications: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[str | None] = mapped_column(String(100), nullable=True)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="lines",
    )

    def to_dto(self) -> PurchaseOrderLine:
        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_number=self.line_number,
            item_id=self.item_id,
            quantity_ordered=self.quantity_ordered,
            unit_price=self.unit_price,
            line_total=self.line_total,
            unit_id=self.unit_id,
            cgst_rate=self.cgst_rate,
            sgst_rate=self.sgst_rate,
            igst_rate=self.igst_rate,
            cgst_amount=self.cgst_amount,
            sgst_amount=self.sgst_amount,
            igst_amount=self.igst_amount,
            quantity_received=self.quantity_received,
            over_receipt=self.over_receipt,
            specifications=self.specifications,
            size=self.size,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_number} "
            f"{self.quantity_ordered} x {self.unit_price}>"
        )
