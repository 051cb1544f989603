"""
Procurement Domain Models.

The nouns of procurement: purchase orders and their lines.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from materials_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")


class PoStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    PLACED = "PLACED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class PurchaseOrderLine:
    """A line item on a purchase order, with its computed GST amounts."""
    id: UUID
    purchase_order_id: UUID
    line_number: int
    item_id: UUID
    quantity_ordered: Decimal
    unit_price: Decimal
    line_total: Decimal
    unit_id: UUID | None = None
    cgst_rate: Decimal = Decimal("0")
    sgst_rate: Decimal = Decimal("0")
    igst_rate: Decimal = Decimal("0")
    cgst_amount: Decimal = Decimal("0")
    sgst_amount: Decimal = Decimal("0")
    igst_amount: Decimal = Decimal("0")
    quantity_received: Decimal = Decimal("0")
    over_receipt: bool = False
    specifications: str | None = None
    size: str | None = None

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    @property
    def quantity_outstanding(self) -> Decimal:
        return max(self.quantity_ordered - self.quantity_received, Decimal("0"))


@dataclass(frozen=True)
class PurchaseOrder:
    """A supplier-facing purchase order."""
    id: UUID
    po_number: str
    supplier_id: UUID
    po_date: date
    status: PoStatus = PoStatus.DRAFT
    mrr_id: UUID | None = None
    project_id: UUID | None = None
    expected_delivery_date: date | None = None
    subtotal: Decimal = Decimal("0")
    cgst_total: Decimal = Decimal("0")
    sgst_total: Decimal = Decimal("0")
    igst_total: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    payment_terms: str | None = None
    delivery_terms: str | None = None
    notes: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    placed_by: UUID | None = None
    placed_at: datetime | None = None
    cancelled_reason: str | None = None
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)

    @property
    def quantity_ordered(self) -> Decimal:
        return sum((line.quantity_ordered for line in self.lines), Decimal("0"))

    @property
    def quantity_received(self) -> Decimal:
        return sum((line.quantity_received for line in self.lines), Decimal("0"))
