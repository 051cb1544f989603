"""Engine lifecycle, transactional scope and table management."""

from uuid import uuid4

import pytest
from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError

from materials_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    reset_engine,
    session_scope,
)
from materials_kernel.models.catalog import ItemModel, UnitModel
from materials_kernel.services.catalog_service import CatalogService


def _unit_exists(name: str) -> bool:
    with session_scope() as session:
        return session.scalar(select(UnitModel).where(UnitModel.name == name)) is not None


class TestSessionScope:

    def test_commits_on_success(self, engine, actor_id):
        with session_scope() as session:
            CatalogService(session).register_unit("Cubic metre", "m3", actor_id)

        assert _unit_exists("Cubic metre")

    def test_rolls_back_and_reraises(self, engine, actor_id, captured_logs):
        with pytest.raises(RuntimeError, match="supplier portal down"):
            with session_scope() as session:
                CatalogService(session).register_unit("Cubic metre", "m3", actor_id)
                raise RuntimeError("supplier portal down")

        assert not _unit_exists("Cubic metre")
        [record] = captured_logs.find("transaction_rolled_back")
        assert record["level"] == "WARNING"
        assert record["exc_type"] == "RuntimeError"

    def test_sqlite_enforces_foreign_keys(self, engine, actor_id):
        with pytest.raises(IntegrityError):
            with session_scope() as session:
                session.add(
                    ItemModel(
                        item_code="BRK-RED",
                        name="Red brick",
                        unit_id=uuid4(),
                        created_by_id=actor_id,
                    )
                )


class TestTables:

    def test_create_tables_includes_module_tables(self, engine):
        tables = set(inspect(get_engine()).get_table_names())
        assert {
            "items",
            "suppliers",
            "inventory_records",
            "inventory_ledger_entries",
            "supplier_ledger_entries",
        } <= tables
        assert len(tables) > 10

    def test_drop_and_recreate(self, engine, actor_id):
        drop_tables()
        assert inspect(get_engine()).get_table_names() == []

        create_tables()
        with session_scope() as session:
            CatalogService(session).register_unit("Bag", "bag", actor_id)
        assert _unit_exists("Bag")


class TestUninitialized:

    def test_session_before_init_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_session()

    def test_engine_before_init_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_engine()
