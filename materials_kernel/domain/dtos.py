"""
Kernel DTOs and enums (``materials_kernel.domain.dtos``).

Frozen dataclasses handed out by kernel services and selectors, so callers
never hold live ORM rows.  Enum values are what the ORM columns store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class InventoryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONTINUED = "DISCONTINUED"


class InventoryTransactionType(str, Enum):
    """Kind of stock movement recorded on an inventory ledger entry."""

    PURCHASE = "PURCHASE"
    ISSUE = "ISSUE"
    RETURN = "RETURN"
    CONSUMPTION = "CONSUMPTION"
    ADJUSTMENT = "ADJUSTMENT"
    RESTOCK = "RESTOCK"


class SupplierTransactionType(str, Enum):
    """Kind of money movement recorded on a supplier ledger entry."""

    PURCHASE = "PURCHASE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    MATERIAL_RECEIPT = "MATERIAL_RECEIPT"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class ItemInfo:
    """Catalog view of an item, used for inventory record defaults."""

    id: UUID
    item_code: str
    name: str
    category: str | None
    brand: str | None
    unit_id: UUID | None
    unit_symbol: str | None
    cost_per_unit: Decimal


@dataclass(frozen=True)
class SupplierInfo:
    id: UUID
    supplier_name: str
    contact_person: str | None
    phone: str | None
    email: str | None
    gst_number: str | None


@dataclass(frozen=True)
class InventoryRecordDTO:
    """Quantity on hand for one (item, project, warehouse) stock pool."""

    id: UUID
    item_id: UUID
    project_id: UUID | None
    warehouse_id: UUID | None
    stock_key: str
    name: str
    unit: str | None
    category: str | None
    quantity_on_hand: Decimal
    unit_cost: Decimal
    minimum_stock_level: Decimal
    maximum_stock_level: Decimal
    reorder_point: Decimal
    location: str | None
    status: InventoryStatus

    @property
    def stock_value(self) -> Decimal:
        return self.quantity_on_hand * self.unit_cost

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_point > 0 and self.quantity_on_hand <= self.reorder_point


@dataclass(frozen=True)
class InventoryLedgerEntryDTO:
    id: UUID
    record_id: UUID
    item_id: UUID
    project_id: UUID | None
    warehouse_id: UUID | None
    transaction_type: InventoryTransactionType
    quantity_change: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reference: str
    source_id: UUID | None
    description: str | None
    actor_id: UUID
    transaction_at: datetime
    sequence: int


@dataclass(frozen=True)
class SupplierLedgerEntryDTO:
    id: UUID
    supplier_id: UUID
    po_id: UUID | None
    transaction_type: SupplierTransactionType
    transaction_date: date
    reference: str
    description: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    balance: Decimal
    payment_status: PaymentStatus
    due_date: date | None
    sequence: int
