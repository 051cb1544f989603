"""
InventoryLedgerService: the single mutation path for stock.

Every quantity change must leave one ledger entry behind whose
before/after snapshots chain, and a decrement may never take a pool below
zero.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from materials_kernel.domain.dtos import InventoryStatus, InventoryTransactionType
from materials_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.selectors.inventory_selector import InventorySelector
from materials_kernel.services.inventory_ledger import RestockRequest


class TestApplyInventoryChange:

    def test_decrement_writes_one_entry(
        self, session, inventory_service, stock_record, catalog, project_id, actor_id
    ):
        record = inventory_service.apply_inventory_change(
            catalog.cement.id,
            project_id,
            None,
            Decimal("-30"),
            InventoryTransactionType.ISSUE,
            "ISSUE-test",
            actor_id,
        )
        session.commit()

        assert record.quantity_on_hand == Decimal("70")
        entries = InventorySelector(session).entries_for_reference("ISSUE-test")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.quantity_change == Decimal("-30")
        assert entry.quantity_before == Decimal("100")
        assert entry.quantity_after == Decimal("70")
        assert entry.transaction_type is InventoryTransactionType.ISSUE
        assert entry.actor_id == actor_id

    def test_insufficient_stock_writes_nothing(
        self, session, inventory_service, stock_record, catalog, project_id, actor_id
    ):
        selector = InventorySelector(session)
        before = len(selector.history(record_id=stock_record.id))

        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.apply_inventory_change(
                catalog.cement.id,
                project_id,
                None,
                Decimal("-101"),
                InventoryTransactionType.ISSUE,
                "ISSUE-too-much",
                actor_id,
            )
        session.rollback()

        assert exc_info.value.available == Decimal("100")
        assert exc_info.value.requested == Decimal("101")
        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert selector.available_quantity(catalog.cement.id, project_id) == Decimal("100")
        assert len(selector.history(record_id=stock_record.id)) == before

    def test_decrement_of_missing_pool_reports_zero_available(
        self, inventory_service, catalog, project_id, actor_id
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.apply_inventory_change(
                catalog.steel.id,
                project_id,
                None,
                Decimal("-1"),
                InventoryTransactionType.CONSUMPTION,
                "CONSUMPTION-x",
                actor_id,
            )
        assert exc_info.value.available == Decimal("0")

    def test_first_increment_creates_record_with_catalog_defaults(
        self, session, inventory_service, catalog, project_id, warehouse_id, actor_id
    ):
        record = inventory_service.apply_inventory_change(
            catalog.steel.id,
            project_id,
            warehouse_id,
            Decimal("250"),
            InventoryTransactionType.PURCHASE,
            "GRN000001",
            actor_id,
        )
        session.commit()

        assert record.quantity_on_hand == Decimal("250")
        assert record.name == "TMT Bar 12mm"
        assert record.unit == "kg"
        assert record.unit_cost == Decimal("65")
        assert record.warehouse_id == warehouse_id
        assert record.status is InventoryStatus.ACTIVE

    def test_purchase_price_overrides_unit_cost(
        self, session, inventory_service, stock_record, catalog, project_id, warehouse_id, actor_id
    ):
        created = inventory_service.apply_inventory_change(
            catalog.steel.id, project_id, warehouse_id, Decimal("10"),
            InventoryTransactionType.PURCHASE, "GRN000001", actor_id,
            unit_cost=Decimal("61.50"),
        )
        updated = inventory_service.apply_inventory_change(
            catalog.cement.id, project_id, None, Decimal("10"),
            InventoryTransactionType.PURCHASE, "GRN000002", actor_id,
            unit_cost=Decimal("50"),
        )
        unchanged = inventory_service.apply_inventory_change(
            catalog.cement.id, project_id, None, Decimal("-5"),
            InventoryTransactionType.ISSUE, "ISSUE-1", actor_id,
        )
        session.commit()

        assert created.unit_cost == Decimal("61.50")
        assert updated.unit_cost == Decimal("50")
        assert updated.stock_value == Decimal("5500")
        assert unchanged.unit_cost == Decimal("50")

    def test_pools_are_scoped_by_project_and_warehouse(
        self, session, inventory_service, catalog, project_id, other_project_id, warehouse_id, actor_id
    ):
        for project, warehouse, qty in (
            (project_id, None, "10"),
            (project_id, warehouse_id, "20"),
            (other_project_id, None, "30"),
        ):
            inventory_service.apply_inventory_change(
                catalog.sand.id, project, warehouse, Decimal(qty),
                InventoryTransactionType.RESTOCK, "seed", actor_id,
            )
        session.commit()

        selector = InventorySelector(session)
        assert selector.available_quantity(catalog.sand.id, project_id) == Decimal("10")
        assert selector.available_quantity(catalog.sand.id, project_id, warehouse_id) == Decimal("20")
        assert selector.available_quantity(catalog.sand.id, other_project_id) == Decimal("30")

    def test_zero_delta_rejected(self, inventory_service, catalog, project_id, actor_id):
        with pytest.raises(InvalidQuantityError):
            inventory_service.apply_inventory_change(
                catalog.cement.id, project_id, None, Decimal("0"),
                InventoryTransactionType.ADJUSTMENT, "noop", actor_id,
            )

    def test_unknown_item_rejected(self, inventory_service, project_id, actor_id):
        with pytest.raises(ReferenceNotFoundError):
            inventory_service.apply_inventory_change(
                uuid4(), project_id, None, Decimal("1"),
                InventoryTransactionType.PURCHASE, "GRN-x", actor_id,
            )

    def test_change_is_logged(
        self, inventory_service, stock_record, catalog, project_id, actor_id, captured_logs
    ):
        inventory_service.apply_inventory_change(
            catalog.cement.id, project_id, None, Decimal("-5"),
            InventoryTransactionType.CONSUMPTION, "CONSUMPTION-log", actor_id,
        )
        applied = captured_logs.find("inventory_change_applied")
        assert applied
        assert applied[-1]["reference"] == "CONSUMPTION-log"
        assert Decimal(applied[-1]["quantity_after"]) == Decimal("95")
        assert applied[-1]["transaction_type"] == "CONSUMPTION"


class TestRecordLifecycle:

    def test_opening_stock_is_an_adjustment_entry(self, session, stock_record):
        history = InventorySelector(session).history(record_id=stock_record.id)
        assert len(history) == 1
        assert history[0].transaction_type is InventoryTransactionType.ADJUSTMENT
        assert history[0].reference == f"INITIAL-{stock_record.id}"
        assert history[0].quantity_change == Decimal("100")

    def test_zero_opening_stock_writes_no_entry(
        self, session, inventory_service, catalog, project_id, actor_id
    ):
        record = inventory_service.create_record(catalog.steel.id, project_id, None, actor_id)
        assert InventorySelector(session).history(record_id=record.id) == []

    def test_duplicate_pool_rejected(self, inventory_service, stock_record, catalog, project_id, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            inventory_service.create_record(catalog.cement.id, project_id, None, actor_id)
        assert exc_info.value.field == "stock_key"

    def test_min_above_max_rejected(self, inventory_service, catalog, project_id, actor_id):
        with pytest.raises(ValidationError):
            inventory_service.create_record(
                catalog.steel.id, project_id, None, actor_id,
                minimum_stock_level=Decimal("50"), maximum_stock_level=Decimal("10"),
            )

    def test_ensure_record(self, inventory_service, stock_record, catalog, project_id, actor_id):
        existing, created = inventory_service.ensure_record(catalog.cement.id, project_id, None, actor_id)
        assert not created
        assert existing.id == stock_record.id

        fresh, created = inventory_service.ensure_record(catalog.sand.id, project_id, None, actor_id)
        assert created
        assert fresh.quantity_on_hand == Decimal("0")

    def test_restock(self, session, inventory_service, stock_record, actor_id):
        record = inventory_service.restock(
            stock_record.id, Decimal("50"), actor_id, unit_cost=Decimal("395")
        )
        session.commit()

        assert record.quantity_on_hand == Decimal("150")
        assert record.unit_cost == Decimal("395")
        latest = InventorySelector(session).history(record_id=stock_record.id, limit=1)[0]
        assert latest.transaction_type is InventoryTransactionType.RESTOCK
        assert latest.reference.startswith("RESTOCK-")

    def test_restock_requires_positive_quantity(self, inventory_service, stock_record, actor_id):
        with pytest.raises(InvalidQuantityError):
            inventory_service.restock(stock_record.id, Decimal("0"), actor_id)

    def test_bulk_restock_isolates_failures(
        self, session, inventory_service, stock_record, actor_id
    ):
        missing = uuid4()
        result = inventory_service.bulk_restock(
            [
                RestockRequest(stock_record.id, Decimal("5")),
                RestockRequest(missing, Decimal("5")),
                RestockRequest(stock_record.id, Decimal("-1")),
                RestockRequest(stock_record.id, Decimal("7")),
            ],
            actor_id,
        )
        session.commit()

        assert not result.all_succeeded
        assert len(result.succeeded) == 2
        assert [(f.record_id, f.code) for f in result.failed] == [
            (missing, "REFERENCE_NOT_FOUND"),
            (stock_record.id, "INVALID_QUANTITY"),
        ]
        assert InventorySelector(session).get_record(stock_record.id).quantity_on_hand == Decimal("112")

    def test_adjust_posts_difference(self, session, inventory_service, stock_record, actor_id):
        record = inventory_service.adjust(stock_record.id, Decimal("96"), actor_id, "Stock count")
        session.commit()

        assert record.quantity_on_hand == Decimal("96")
        entries = InventorySelector(session).entries_for_reference(f"ADJUST-{stock_record.id}")
        assert [e.quantity_change for e in entries] == [Decimal("-4")]

    def test_adjust_to_same_quantity_rejected(self, inventory_service, stock_record, actor_id):
        with pytest.raises(InvalidQuantityError):
            inventory_service.adjust(stock_record.id, Decimal("100"), actor_id, "No change")

    def test_adjust_negative_rejected(self, inventory_service, stock_record, actor_id):
        with pytest.raises(InvalidQuantityError):
            inventory_service.adjust(stock_record.id, Decimal("-1"), actor_id, "Bad count")

    def test_update_thresholds_never_touches_quantity(
        self, session, inventory_service, stock_record, actor_id
    ):
        record = inventory_service.update_thresholds(
            stock_record.id,
            actor_id,
            reorder_point=Decimal("40"),
            location="Shed B",
        )
        assert record.quantity_on_hand == Decimal("100")
        assert record.reorder_point == Decimal("40")
        assert record.location == "Shed B"
        assert len(InventorySelector(session).history(record_id=stock_record.id)) == 1

    def test_update_thresholds_validates(self, inventory_service, stock_record, actor_id):
        with pytest.raises(ValidationError):
            inventory_service.update_thresholds(
                stock_record.id, actor_id, minimum_stock_level=Decimal("5000")
            )
        with pytest.raises(ValidationError):
            inventory_service.update_thresholds(
                stock_record.id, actor_id, reorder_point=Decimal("-1")
            )

    def test_set_status(self, inventory_service, stock_record, actor_id):
        record = inventory_service.set_status(stock_record.id, "DISCONTINUED", actor_id)
        assert record.status is InventoryStatus.DISCONTINUED


class TestReplay:

    def test_replay_matches_quantity_after_mixed_movements(
        self, session, inventory_service, stock_record, catalog, project_id, actor_id
    ):
        for delta, tx in (
            ("-30", InventoryTransactionType.ISSUE),
            ("5", InventoryTransactionType.RETURN),
            ("-12.5", InventoryTransactionType.CONSUMPTION),
            ("40", InventoryTransactionType.PURCHASE),
        ):
            inventory_service.apply_inventory_change(
                catalog.cement.id, project_id, None, Decimal(delta), tx, f"{tx.value}-r", actor_id
            )
        session.commit()

        selector = InventorySelector(session)
        assert selector.verify_replay(stock_record.id) == Decimal("102.5")
        assert selector.replay_quantity(stock_record.id) == Decimal("102.5")
