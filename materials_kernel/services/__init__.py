"""Services for the materials kernel (write side)."""

from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.inventory_ledger import (
    BulkRestockResult,
    InventoryLedgerService,
    RestockFailure,
    RestockRequest,
)
from materials_kernel.services.sequence_service import SequenceService
from materials_kernel.services.supplier_ledger import SupplierLedgerService

__all__ = [
    "BulkRestockResult",
    "CatalogService",
    "InventoryLedgerService",
    "RestockFailure",
    "RestockRequest",
    "SequenceService",
    "SupplierLedgerService",
]
