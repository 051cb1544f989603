"""
Receiving Module (``materials_modules.receiving``).

Responsibility
--------------
Material receipts (goods received notes) against purchase orders, and the
single inventory posting each receipt makes.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM models, the receipt workflow and
``MaterialReceiptService``.

Invariants enforced
-------------------
* PENDING -> RECEIVED -> APPROVED (verified) -> COMPLETED; PENDING or
  RECEIVED -> REJECTED.
* Stock posts once per receipt, at the transition chosen by
  ``ReceiptPostingPolicy``.
"""

from materials_modules.receiving.models import (
    MaterialReceipt,
    MaterialReceiptLine,
    PostingTrigger,
    ReceiptCondition,
    ReceiptStatus,
)
from materials_modules.receiving.service import MaterialReceiptService
from materials_modules.receiving.workflows import MATERIAL_RECEIPT_WORKFLOW

__all__ = [
    "MaterialReceipt",
    "MaterialReceiptLine",
    "MaterialReceiptService",
    "MATERIAL_RECEIPT_WORKFLOW",
    "PostingTrigger",
    "ReceiptCondition",
    "ReceiptStatus",
]
