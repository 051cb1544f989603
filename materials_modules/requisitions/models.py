"""
Requisition Domain Models.

The nouns of material requisitioning: the Material Requirement Request (MRR),
its items, and the result of checking an MRR against stock.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from materials_kernel.logging_config import get_logger

logger = get_logger("modules.requisitions.models")


class MrrStatus(str, Enum):
    """MRR lifecycle states."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MrrPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ItemAvailability(str, Enum):
    """Stock position of one MRR item."""
    AVAILABLE = "AVAILABLE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    NOT_IN_INVENTORY = "NOT_IN_INVENTORY"
    CREATED_NO_STOCK = "CREATED_NO_STOCK"  # record created by the check itself


class MrrReadiness(str, Enum):
    """Overall stock position of an MRR."""
    READY_FOR_ISSUE = "READY_FOR_ISSUE"
    NEEDS_PURCHASE = "NEEDS_PURCHASE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"


@dataclass(frozen=True)
class MrrItem:
    """A requested material on an MRR."""
    id: UUID
    mrr_id: UUID
    line_number: int
    item_id: UUID
    quantity_requested: Decimal
    unit_id: UUID | None = None
    specifications: str | None = None
    purpose: str | None = None
    estimated_cost_per_unit: Decimal = Decimal("0")
    total_estimated_cost: Decimal = Decimal("0")


@dataclass(frozen=True)
class Mrr:
    """A Material Requirement Request."""
    id: UUID
    mrr_number: str
    project_id: UUID
    requested_by: UUID
    request_date: date
    status: MrrStatus = MrrStatus.DRAFT
    priority: MrrPriority = MrrPriority.MEDIUM
    component_id: UUID | None = None
    subcontractor_id: UUID | None = None
    required_date: date | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    total_estimated_cost: Decimal = Decimal("0")
    items: tuple[MrrItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MrrItemCheck:
    """Stock check for one MRR item."""
    mrr_item_id: UUID
    item_id: UUID
    quantity_requested: Decimal
    available_quantity: Decimal
    status: ItemAvailability
    record_id: UUID | None = None


@dataclass(frozen=True)
class MrrInventoryCheck:
    """Stock check for a whole MRR."""
    mrr_id: UUID
    readiness: MrrReadiness
    items: tuple[MrrItemCheck, ...]

    @property
    def all_available(self) -> bool:
        return self.readiness is MrrReadiness.READY_FOR_ISSUE

    def count(self, status: ItemAvailability) -> int:
        return sum(1 for i in self.items if i.status is status)
