"""Selectors for the materials kernel (read side)."""

from materials_kernel.selectors.inventory_selector import InventorySelector, InventoryStats
from materials_kernel.selectors.supplier_ledger_selector import (
    SupplierLedgerSelector,
    SupplierStatement,
    SupplierSummary,
)

__all__ = [
    "InventorySelector",
    "InventoryStats",
    "SupplierLedgerSelector",
    "SupplierStatement",
    "SupplierSummary",
]
