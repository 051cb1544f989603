"""
Receiving Domain Models.

Material receipts (goods received notes) against purchase orders.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from materials_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.models")


class ReceiptStatus(str, Enum):
    """Material receipt lifecycle states."""
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    APPROVED = "APPROVED"  # verified
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ReceiptCondition(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    PARTIAL = "PARTIAL"
    REJECTED = "REJECTED"


class PostingTrigger(str, Enum):
    """The receipt transition that posted stock."""
    VERIFY = "verify"
    COMPLETE = "complete"


@dataclass(frozen=True)
class MaterialReceiptLine:
    """One received PO line."""
    id: UUID
    receipt_id: UUID
    line_number: int
    po_line_id: UUID
    item_id: UUID
    quantity_received: Decimal
    unit_price: Decimal
    line_total: Decimal
    quantity_actually_received: Decimal | None = None
    verified_quantity: Decimal | None = None
    condition_status: ReceiptCondition = ReceiptCondition.GOOD
    batch_number: str | None = None
    expiry_date: date | None = None
    cgst_rate: Decimal = Decimal("0")
    sgst_rate: Decimal = Decimal("0")
    igst_rate: Decimal = Decimal("0")
    over_receipt: bool = False
    remarks: str | None = None


@dataclass(frozen=True)
class MaterialReceipt:
    """A goods received note for one purchase order."""
    id: UUID
    receipt_number: str
    po_id: UUID
    received_date: date
    received_by: UUID
    status: ReceiptStatus = ReceiptStatus.PENDING
    condition_status: ReceiptCondition = ReceiptCondition.GOOD
    project_id: UUID | None = None
    warehouse_id: UUID | None = None
    delivery_date: date | None = None
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    supplier_delivery_note: str | None = None
    vehicle_number: str | None = None
    driver_name: str | None = None
    inventory_posted_by: PostingTrigger | None = None
    completed_at: datetime | None = None
    rejection_reason: str | None = None
    lines: tuple[MaterialReceiptLine, ...] = field(default_factory=tuple)

    @property
    def is_posted(self) -> bool:
        return self.inventory_posted_by is not None

    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))
