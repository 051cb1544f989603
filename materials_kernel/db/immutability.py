"""
ORM-level append-only enforcement for the two ledgers.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below intercept them and raise
``ImmutabilityViolationError`` so the flush aborts and nothing is written:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity                  | Rule
------------------------|----------------------------------------------------
InventoryLedgerEntry    | Never updated, never deleted.  Corrections are new
                        | compensating entries.
SupplierLedgerEntry     | Never deleted.  Only payment_status (settlement) and
                        | audit metadata may change after insert.

Bulk ``update()``/``delete()`` statements bypass mapper events; services
never issue them against ledger tables.

Usage:

    from materials_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

``unregister_immutability_listeners()`` exists for tests only.
"""

from sqlalchemy import event, inspect

from materials_kernel.exceptions import ImmutabilityViolationError
from materials_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


SUPPLIER_ENTRY_MUTABLE_FIELDS = frozenset({
    "payment_status",
    "updated_at",
    "updated_by_id",
})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_inventory_entry_immutability(mapper, connection, target):
    """Inventory ledger entries are append-only: any field change is blocked."""
    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            raise _blocked(
                "InventoryLedgerEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an inventory ledger entry",
                field=attr.key,
            )


def _check_inventory_entry_delete(mapper, connection, target):
    raise _blocked(
        "InventoryLedgerEntry",
        target.id,
        "DELETE",
        "Inventory ledger entries cannot be deleted",
    )


def _check_supplier_entry_immutability(mapper, connection, target):
    """
    Supplier ledger entries: amounts, balance and references are frozen.

    Settlement moves payment_status through PENDING/PARTIAL/PAID/OVERDUE,
    so that column (plus audit metadata) stays writable.
    """
    for attr in inspect(target).attrs:
        if attr.key in SUPPLIER_ENTRY_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "SupplierLedgerEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a supplier ledger entry",
                field=attr.key,
            )


def _check_supplier_entry_delete(mapper, connection, target):
    raise _blocked(
        "SupplierLedgerEntry",
        target.id,
        "DELETE",
        "Supplier ledger entries cannot be deleted",
    )


_LISTENERS = (
    ("InventoryLedgerEntryModel", "before_update", _check_inventory_entry_immutability),
    ("InventoryLedgerEntryModel", "before_delete", _check_inventory_entry_delete),
    ("SupplierLedgerEntryModel", "before_update", _check_supplier_entry_immutability),
    ("SupplierLedgerEntryModel", "before_delete", _check_supplier_entry_delete),
)


def _models():
    # Inline import: models import from db.
    from materials_kernel.models.inventory import InventoryLedgerEntryModel
    from materials_kernel.models.supplier_ledger import SupplierLedgerEntryModel

    return {
        "InventoryLedgerEntryModel": InventoryLedgerEntryModel,
        "SupplierLedgerEntryModel": SupplierLedgerEntryModel,
    }


def register_immutability_listeners():
    """
    Register the ledger immutability listeners.

    Idempotent.  Call after models are importable and before any writes.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove a listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the ledger immutability listeners.

    WARNING: tests only.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        _safe_remove_listener(models[model_name], event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
