"""
Materials Modules.

Document workflows over the materials kernel.  Each module contains:
- Domain models (the nouns, as frozen DTOs and enums)
- ORM models (persistence, with ``to_dto()``)
- Workflows (closed state machines)
- A service that owns the transaction boundary

Modules:
- requisitions: Material Requirement Requests (MRR)
- procurement: Purchase orders, supplier ledger posting on placement,
  post-commit supplier notification
- receiving: Material receipts (goods received notes) and the single
  inventory posting per receipt
- stock_movements: Material issues, returns and consumption

Stock and money never change here directly; every quantity change goes
through ``InventoryLedgerService`` and every supplier balance change through
``SupplierLedgerService``.
"""

from materials_modules import (
    procurement,
    receiving,
    requisitions,
    stock_movements,
)

__all__ = [
    "requisitions",
    "procurement",
    "receiving",
    "stock_movements",
]
