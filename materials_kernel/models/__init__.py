"""ORM models for the materials kernel."""

from materials_kernel.models.catalog import ItemModel, SupplierModel, UnitModel
from materials_kernel.models.inventory import (
    InventoryLedgerEntryModel,
    InventoryRecordModel,
    make_stock_key,
)
from materials_kernel.models.supplier_ledger import SupplierLedgerEntryModel

__all__ = [
    "InventoryLedgerEntryModel",
    "InventoryRecordModel",
    "ItemModel",
    "SupplierLedgerEntryModel",
    "SupplierModel",
    "UnitModel",
    "make_stock_key",
]
