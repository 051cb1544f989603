"""
Module ORM Registry (``materials_modules._orm_registry``).

Responsibility
--------------
Ensure kernel and module ORM models are imported so that ``Base.metadata``
contains every table before ``create_tables()`` runs.

Usage
-----
``materials_kernel.db.engine.create_tables()`` calls
``import_all_orm_models()`` itself; scripts and ``tests/conftest.py`` only
call ``create_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``materials_modules.*.orm`` module.

    Kernel tables first: module tables reference items, suppliers and
    units.  Idempotent.
    """
    import materials_kernel.models  # noqa: F401
    import materials_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    # fmt: off
    import materials_modules.procurement.orm  # noqa: F401
    import materials_modules.receiving.orm  # noqa: F401
    import materials_modules.requisitions.orm  # noqa: F401
    import materials_modules.stock_movements.orm  # noqa: F401
    # fmt: on
