"""
Stock Movement Domain Models.

Material issues, returns and consumption: direct stock movements with no
approval workflow.  Deleting one reverses it; the row stays as REVERSED.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from materials_kernel.domain.dtos import InventoryTransactionType
from materials_kernel.logging_config import get_logger

logger = get_logger("modules.stock_movements.models")


class MovementKind(str, Enum):
    """Movement family; also the prefix of its inventory ledger references."""
    ISSUE = "ISSUE"
    RETURN = "RETURN"
    CONSUMPTION = "CONSUMPTION"

    @property
    def transaction_type(self) -> InventoryTransactionType:
        return InventoryTransactionType(self.value)

    @property
    def sign(self) -> Decimal:
        """Direction of the stock change when the movement is created."""
        return Decimal("1") if self is MovementKind.RETURN else Decimal("-1")


class MovementStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVERSED = "REVERSED"


class IssueType(str, Enum):
    STORE_ISSUE = "STORE_ISSUE"
    PO_ISSUE = "PO_ISSUE"


class ReturnType(str, Enum):
    STORE_RETURN = "STORE_RETURN"
    PO_RETURN = "PO_RETURN"
    DAMAGE_RETURN = "DAMAGE_RETURN"


class ReturnCondition(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    USED = "USED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class MaterialIssue:
    """Material handed out from stock to a project, component or person."""
    id: UUID
    item_id: UUID
    project_id: UUID
    quantity: Decimal
    issue_date: date
    status: MovementStatus = MovementStatus.ACTIVE
    issue_type: IssueType = IssueType.STORE_ISSUE
    warehouse_id: UUID | None = None
    purpose: str | None = None
    location: str | None = None
    mrr_id: UUID | None = None
    po_id: UUID | None = None
    receipt_id: UUID | None = None
    component_id: UUID | None = None
    subcontractor_id: UUID | None = None
    issued_to: UUID | None = None
    issued_by: UUID | None = None


@dataclass(frozen=True)
class MaterialReturn:
    """Material brought back into stock."""
    id: UUID
    item_id: UUID
    project_id: UUID
    quantity: Decimal
    return_date: date
    status: MovementStatus = MovementStatus.ACTIVE
    return_type: ReturnType = ReturnType.STORE_RETURN
    condition_status: ReturnCondition = ReturnCondition.GOOD
    warehouse_id: UUID | None = None
    return_reason: str | None = None
    issue_id: UUID | None = None
    po_id: UUID | None = None
    returned_by: UUID | None = None


@dataclass(frozen=True)
class MaterialConsumption:
    """Material used up on site."""
    id: UUID
    item_id: UUID
    project_id: UUID
    quantity: Decimal
    consumption_date: date
    status: MovementStatus = MovementStatus.ACTIVE
    warehouse_id: UUID | None = None
    purpose: str | None = None
    location: str | None = None
    component_id: UUID | None = None
    recorded_by: UUID | None = None
