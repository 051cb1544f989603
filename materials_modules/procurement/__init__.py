"""
Procurement Module (``materials_modules.procurement``).

Responsibility
--------------
Purchase orders: GST-bearing lines and totals, approval, placement with its
supplier ledger debit, cancellation, and the receiving status derived from
material receipts.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM models, the PO workflow, the supplier
notification seam and ``PurchaseOrderService``.

Invariants enforced
-------------------
* total_amount = subtotal + sum of line GST, recomputed on every edit.
* Exactly one PURCHASE supplier ledger entry per placed PO.
* Lines are editable only in DRAFT.
"""

from materials_modules.procurement.models import (
    PoStatus,
    PurchaseOrder,
    PurchaseOrderLine,
)
from materials_modules.procurement.notifications import (
    LoggingPoNotifier,
    PoNotifier,
    format_po_message,
)
from materials_modules.procurement.service import PurchaseOrderService
from materials_modules.procurement.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    RECEIVABLE_STATES,
)

__all__ = [
    "LoggingPoNotifier",
    "PoNotifier",
    "PoStatus",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderService",
    "PURCHASE_ORDER_WORKFLOW",
    "RECEIVABLE_STATES",
    "format_po_message",
]
