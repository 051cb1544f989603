"""
Requisitions Module (``materials_modules.requisitions``).

Responsibility
--------------
Material Requirement Requests (MRR): a project's request for materials,
approved before anything is purchased or issued against it.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM models, the MRR workflow and ``MrrService``.
Procurement and stock movements consult ``MrrService.require_approved``
before referencing an MRR.

Invariants enforced
-------------------
* Items are editable only in DRAFT.
* DRAFT -> SUBMITTED -> APPROVED | REJECTED; APPROVED and REJECTED are
  terminal.
* Only APPROVED MRRs may be referenced by a PO or an MRR-linked issue.
"""

from materials_modules.requisitions.models import (
    ItemAvailability,
    Mrr,
    MrrInventoryCheck,
    MrrItem,
    MrrItemCheck,
    MrrPriority,
    MrrReadiness,
    MrrStatus,
)
from materials_modules.requisitions.service import MrrService
from materials_modules.requisitions.workflows import MRR_WORKFLOW

__all__ = [
    "ItemAvailability",
    "Mrr",
    "MrrInventoryCheck",
    "MrrItem",
    "MrrItemCheck",
    "MrrPriority",
    "MrrReadiness",
    "MrrService",
    "MrrStatus",
    "MRR_WORKFLOW",
]
