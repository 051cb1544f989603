"""
Concurrent issues against one stock pool.

Many threads issue from the same (item, project) pool at once, each in its
own session.  Whatever the interleaving, stock never goes below zero, the
number of successful issues matches the stock available, and the ledger
replays to the stored quantity.

Runs against a file-backed SQLite database so the threads hold separate
connections and contend for the write lock.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from materials_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from materials_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from materials_kernel.exceptions import InsufficientStockError
from materials_kernel.selectors.inventory_selector import InventorySelector
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.inventory_ledger import InventoryLedgerService
from materials_modules.stock_movements import StockMovementService

pytestmark = pytest.mark.slow_locks

THREADS = 12
ISSUE_QUANTITY = Decimal("10")
OPENING_STOCK = Decimal("75")


@pytest.fixture
def file_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'materials.db'}")
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def cement_pool(file_engine, deterministic_clock, actor_id, project_id):
    session = get_session()
    try:
        cement = CatalogService(session).register_item(
            "CEM-PPC", "PPC Cement", actor_id, cost_per_unit=Decimal("360")
        )
        record = InventoryLedgerService(session, deterministic_clock).create_record(
            cement.id, project_id, None, actor_id, initial_quantity=OPENING_STOCK
        )
        session.commit()
        return record
    finally:
        session.close()


class TestConcurrentIssues:

    def test_no_negative_stock_under_contention(
        self, file_engine, cement_pool, deterministic_clock, actor_id, project_id
    ):
        factory = get_session_factory()
        barrier = Barrier(THREADS)

        def issue_once(_):
            session = factory()
            try:
                service = StockMovementService(session, clock=deterministic_clock)
                barrier.wait()
                try:
                    service.create_issue(
                        cement_pool.item_id, project_id, ISSUE_QUANTITY, actor_id
                    )
                    return "issued"
                except InsufficientStockError:
                    return "insufficient"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            outcomes = list(pool.map(issue_once, range(THREADS)))

        expected_issued = int(OPENING_STOCK // ISSUE_QUANTITY)
        assert outcomes.count("issued") == expected_issued
        assert outcomes.count("insufficient") == THREADS - expected_issued

        session = get_session()
        try:
            selector = InventorySelector(session)
            on_hand = selector.get_record(cement_pool.id).quantity_on_hand
            assert on_hand == OPENING_STOCK - expected_issued * ISSUE_QUANTITY
            assert on_hand >= 0
            assert selector.verify_replay(cement_pool.id) == on_hand
            assert len(selector.history(record_id=cement_pool.id)) == expected_issued + 1
        finally:
            session.close()
