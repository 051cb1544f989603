"""
Pytest configuration and shared fixtures.

Every test runs against its own in-memory SQLite database, built through
the same ``init_engine_from_url`` / ``create_tables`` path the application
uses, with the ledger immutability listeners registered.  Module services
commit, so isolation comes from the fresh database rather than from a
rolled-back outer transaction.
"""

import io
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from materials_config.schema import MaterialsConfig
from materials_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from materials_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from materials_kernel.domain.clock import DeterministicClock
from materials_kernel.domain.dtos import ItemInfo, SupplierInfo
from materials_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
)
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.inventory_ledger import InventoryLedgerService

# Deterministic identifiers so failures are reproducible
ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")
APPROVER_ID = UUID("00000000-0000-0000-0000-000000000002")
STOREKEEPER_ID = UUID("00000000-0000-0000-0000-000000000003")
PROJECT_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_PROJECT_ID = UUID("00000000-0000-0000-0000-0000000000a2")
WAREHOUSE_ID = UUID("00000000-0000-0000-0000-0000000000b1")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _configure_test_logging():
    configure_logging(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


class CapturedLogs:
    """JSON log lines written while a test runs."""

    def __init__(self, stream: io.StringIO):
        self._stream = stream

    @property
    def records(self) -> list[dict]:
        return [
            json.loads(line)
            for line in self._stream.getvalue().splitlines()
            if line.strip()
        ]

    def messages(self) -> list[str]:
        return [r["message"] for r in self.records]

    def find(self, message: str) -> list[dict]:
        return [r for r in self.records if r["message"] == message]


@pytest.fixture
def captured_logs():
    """Attach a structured handler to the materials_kernel logger."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("materials_kernel")
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    yield CapturedLogs(stream)
    root.removeHandler(handler)
    root.setLevel(previous_level)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session(engine):
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 1, 15, 9, 0, tzinfo=UTC))


@pytest.fixture
def materials_config():
    return MaterialsConfig()


# ---------------------------------------------------------------------------
# Actors and scopes
# ---------------------------------------------------------------------------


@pytest.fixture
def actor_id():
    return ACTOR_ID


@pytest.fixture
def approver_id():
    return APPROVER_ID


@pytest.fixture
def storekeeper_id():
    return STOREKEEPER_ID


@pytest.fixture
def project_id():
    return PROJECT_ID


@pytest.fixture
def other_project_id():
    return OTHER_PROJECT_ID


@pytest.fixture
def warehouse_id():
    return WAREHOUSE_ID


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Catalog:
    bag_unit_id: UUID
    kg_unit_id: UUID
    cement: ItemInfo
    steel: ItemInfo
    sand: ItemInfo
    supplier: SupplierInfo
    other_supplier: SupplierInfo


@pytest.fixture
def catalog(session, actor_id) -> Catalog:
    """Units, three items and two suppliers, committed."""
    service = CatalogService(session)
    bag = service.register_unit("Bag", "bag", actor_id)
    kg = service.register_unit("Kilogram", "kg", actor_id)
    cement = service.register_item(
        "CEM-OPC53",
        "OPC 53 Grade Cement",
        actor_id,
        category="Cement",
        brand="UltraTech",
        unit_id=bag,
        cost_per_unit=Decimal("380"),
    )
    steel = service.register_item(
        "TMT-12",
        "TMT Bar 12mm",
        actor_id,
        category="Steel",
        unit_id=kg,
        cost_per_unit=Decimal("65"),
    )
    sand = service.register_item(
        "SND-M",
        "M-Sand",
        actor_id,
        category="Aggregates",
        cost_per_unit=Decimal("50"),
    )
    supplier = service.register_supplier(
        "Sri Balaji Traders",
        actor_id,
        contact_person="R. Kumar",
        phone="+91-9800000001",
        email="orders@balajitraders.example",
        gst_number="29ABCDE1234F1Z5",
    )
    other_supplier = service.register_supplier("Deccan Steel Mart", actor_id)
    session.commit()
    return Catalog(
        bag_unit_id=bag,
        kg_unit_id=kg,
        cement=cement,
        steel=steel,
        sand=sand,
        supplier=supplier,
        other_supplier=other_supplier,
    )


@pytest.fixture
def inventory_service(session, deterministic_clock):
    return InventoryLedgerService(session, deterministic_clock)


@pytest.fixture
def stock_record(session, inventory_service, catalog, project_id, actor_id):
    """Cement in PROJECT_ID (no warehouse) with 100 bags on hand, committed."""
    record = inventory_service.create_record(
        catalog.cement.id,
        project_id,
        None,
        actor_id,
        initial_quantity=Decimal("100"),
        reorder_point=Decimal("20"),
        minimum_stock_level=Decimal("10"),
    )
    session.commit()
    return record
