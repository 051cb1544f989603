"""
Stock Movements Module (``materials_modules.stock_movements``).

Responsibility
--------------
Material issues, returns and consumption.  Each create, update and delete
posts the matching inventory ledger entry; deletes are reversals.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM models and ``StockMovementService``.  There
is no workflow: a movement is ACTIVE until reversed.
"""

from materials_modules.stock_movements.models import (
    IssueType,
    MaterialConsumption,
    MaterialIssue,
    MaterialReturn,
    MovementKind,
    MovementStatus,
    ReturnCondition,
    ReturnType,
)
from materials_modules.stock_movements.service import StockMovementService

__all__ = [
    "IssueType",
    "MaterialConsumption",
    "MaterialIssue",
    "MaterialReturn",
    "MovementKind",
    "MovementStatus",
    "ReturnCondition",
    "ReturnType",
    "StockMovementService",
]
