"""
MrrService: item editing, the DRAFT -> SUBMITTED -> APPROVED | REJECTED
workflow, and the stock check against an approved request.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from materials_kernel.exceptions import (
    InvalidMrrStateError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.selectors.inventory_selector import InventorySelector
from materials_modules.requisitions import (
    ItemAvailability,
    MrrPriority,
    MrrReadiness,
    MrrService,
    MrrStatus,
)


@pytest.fixture
def mrr_service(session, deterministic_clock, materials_config):
    return MrrService(session, clock=deterministic_clock, config=materials_config)


@pytest.fixture
def draft_mrr(mrr_service, catalog, project_id, actor_id):
    return mrr_service.create_mrr(
        project_id=project_id,
        requested_by=actor_id,
        items=[
            {
                "item_id": catalog.cement.id,
                "quantity_requested": "50",
                "unit_id": catalog.bag_unit_id,
                "estimated_cost_per_unit": "380",
                "purpose": "Slab casting, level 2",
            },
            {
                "item_id": catalog.steel.id,
                "quantity_requested": "200",
                "estimated_cost_per_unit": "65",
            },
        ],
        priority="HIGH",
    )


class TestMrrCreation:

    def test_create_draft(self, draft_mrr, project_id, deterministic_clock):
        assert draft_mrr.mrr_number == "MRR000001"
        assert draft_mrr.status is MrrStatus.DRAFT
        assert draft_mrr.priority is MrrPriority.HIGH
        assert draft_mrr.project_id == project_id
        assert draft_mrr.request_date == deterministic_clock.today()
        assert [i.line_number for i in draft_mrr.items] == [1, 2]
        # 50 x 380 + 200 x 65
        assert draft_mrr.total_estimated_cost == Decimal("32000")

    def test_numbers_are_sequential(self, mrr_service, draft_mrr, project_id, actor_id):
        second = mrr_service.create_mrr(project_id=project_id, requested_by=actor_id)
        assert second.mrr_number == "MRR000002"
        assert second.items == ()

    def test_unknown_item_rejected(self, mrr_service, catalog, project_id, actor_id):
        with pytest.raises(ReferenceNotFoundError):
            mrr_service.create_mrr(
                project_id=project_id,
                requested_by=actor_id,
                items=[{"item_id": uuid4(), "quantity_requested": "1"}],
            )

    def test_quantity_must_be_positive(self, mrr_service, catalog, project_id, actor_id):
        with pytest.raises(InvalidQuantityError):
            mrr_service.create_mrr(
                project_id=project_id,
                requested_by=actor_id,
                items=[{"item_id": catalog.cement.id, "quantity_requested": "0"}],
            )

    def test_item_id_required(self, mrr_service, project_id, actor_id, engine):
        with pytest.raises(ValidationError) as exc_info:
            mrr_service.create_mrr(
                project_id=project_id,
                requested_by=actor_id,
                items=[{"quantity_requested": "1"}],
            )
        assert exc_info.value.field == "item_id"


class TestMrrItemEditing:

    def test_add_item(self, mrr_service, draft_mrr, catalog, actor_id):
        mrr = mrr_service.add_item(
            draft_mrr.id,
            {"item_id": catalog.sand.id, "quantity_requested": "10", "estimated_cost_per_unit": "50"},
            actor_id,
        )
        assert [i.line_number for i in mrr.items] == [1, 2, 3]
        assert mrr.total_estimated_cost == Decimal("32500")

    def test_update_item_recomputes_totals(self, mrr_service, draft_mrr, actor_id):
        cement_line = draft_mrr.items[0]
        mrr = mrr_service.update_item(
            draft_mrr.id, cement_line.id, {"quantity_requested": "60"}, actor_id
        )
        updated = mrr.items[0]
        assert updated.quantity_requested == Decimal("60")
        assert updated.total_estimated_cost == Decimal("22800")
        assert updated.purpose == "Slab casting, level 2"
        assert mrr.total_estimated_cost == Decimal("35800")

    def test_remove_item(self, mrr_service, draft_mrr, actor_id):
        mrr = mrr_service.remove_item(draft_mrr.id, draft_mrr.items[1].id, actor_id)
        assert len(mrr.items) == 1
        assert mrr.total_estimated_cost == Decimal("19000")

    def test_unknown_line(self, mrr_service, draft_mrr, actor_id):
        with pytest.raises(ReferenceNotFoundError):
            mrr_service.remove_item(draft_mrr.id, uuid4(), actor_id)

    def test_items_frozen_after_submit(self, mrr_service, draft_mrr, catalog, actor_id):
        mrr_service.submit(draft_mrr.id, actor_id)

        with pytest.raises(InvalidMrrStateError) as exc_info:
            mrr_service.add_item(
                draft_mrr.id, {"item_id": catalog.sand.id, "quantity_requested": "1"}, actor_id
            )
        assert exc_info.value.actual == "SUBMITTED"
        assert exc_info.value.required == "DRAFT"

        with pytest.raises(InvalidMrrStateError):
            mrr_service.update_item(
                draft_mrr.id, draft_mrr.items[0].id, {"quantity_requested": "1"}, actor_id
            )
        assert mrr_service.get_mrr(draft_mrr.id).items[0].quantity_requested == Decimal("50")


class TestMrrWorkflow:

    def test_submit_and_approve(
        self, mrr_service, draft_mrr, actor_id, approver_id, deterministic_clock
    ):
        assert mrr_service.submit(draft_mrr.id, actor_id).status is MrrStatus.SUBMITTED
        approved = mrr_service.approve(draft_mrr.id, approver_id)
        assert approved.status is MrrStatus.APPROVED
        assert approved.approved_by == approver_id
        assert approved.approved_at == deterministic_clock.now()

    def test_submit_requires_items(self, mrr_service, project_id, actor_id, engine):
        empty = mrr_service.create_mrr(project_id=project_id, requested_by=actor_id)
        with pytest.raises(ValidationError):
            mrr_service.submit(empty.id, actor_id)
        assert mrr_service.get_mrr(empty.id).status is MrrStatus.DRAFT

    def test_reject_records_reason(self, mrr_service, draft_mrr, actor_id, approver_id):
        mrr_service.submit(draft_mrr.id, actor_id)
        rejected = mrr_service.reject(draft_mrr.id, approver_id, "  Budget exceeded ")
        assert rejected.status is MrrStatus.REJECTED
        assert rejected.rejection_reason == "Budget exceeded"

    def test_reject_requires_reason(self, mrr_service, draft_mrr, actor_id, approver_id):
        mrr_service.submit(draft_mrr.id, actor_id)
        with pytest.raises(ValidationError):
            mrr_service.reject(draft_mrr.id, approver_id, "   ")

    def test_approve_from_draft_rejected(self, mrr_service, draft_mrr, approver_id):
        with pytest.raises(InvalidMrrStateError) as exc_info:
            mrr_service.approve(draft_mrr.id, approver_id)
        assert exc_info.value.actual == "DRAFT"
        assert exc_info.value.required == "SUBMITTED"

    def test_terminal_states(self, mrr_service, draft_mrr, actor_id, approver_id):
        mrr_service.submit(draft_mrr.id, actor_id)
        mrr_service.approve(draft_mrr.id, approver_id)
        with pytest.raises(InvalidMrrStateError):
            mrr_service.reject(draft_mrr.id, approver_id, "too late")

    def test_status_change_logged(self, mrr_service, draft_mrr, actor_id, captured_logs):
        mrr_service.submit(draft_mrr.id, actor_id)
        changed = captured_logs.find("mrr_status_changed")
        assert changed[-1]["from_state"] == "DRAFT"
        assert changed[-1]["to_state"] == "SUBMITTED"
        assert changed[-1]["document_type"] == "MRR"
        assert changed[-1]["actor_id"] == str(actor_id)

    def test_require_approved(self, mrr_service, draft_mrr, actor_id, approver_id):
        mrr_service.submit(draft_mrr.id, actor_id)
        with pytest.raises(InvalidMrrStateError) as exc_info:
            mrr_service.require_approved(draft_mrr.id, "issue")
        assert exc_info.value.required == "APPROVED"
        assert exc_info.value.actual == "SUBMITTED"

        mrr_service.approve(draft_mrr.id, approver_id)
        assert mrr_service.require_approved(draft_mrr.id).id == draft_mrr.id

    def test_unknown_mrr(self, mrr_service, engine):
        with pytest.raises(ReferenceNotFoundError):
            mrr_service.get_mrr(uuid4())


class TestMrrInventoryCheck:

    @pytest.fixture
    def approved_mrr(self, mrr_service, draft_mrr, actor_id, approver_id):
        mrr_service.submit(draft_mrr.id, actor_id)
        return mrr_service.approve(draft_mrr.id, approver_id)

    def test_needs_purchase_when_item_missing(self, mrr_service, approved_mrr, stock_record, actor_id):
        # cement has 100 bags in the project; steel has no record
        check = mrr_service.check_inventory(approved_mrr.id, actor_id)
        statuses = {c.item_id: c.status for c in check.items}

        assert check.readiness is MrrReadiness.NEEDS_PURCHASE
        assert not check.all_available
        assert statuses[stock_record.item_id] is ItemAvailability.AVAILABLE
        assert check.count(ItemAvailability.NOT_IN_INVENTORY) == 1

    def test_create_missing_records(
        self, session, mrr_service, approved_mrr, stock_record, catalog, project_id, actor_id
    ):
        check = mrr_service.check_inventory(approved_mrr.id, actor_id, create_missing=True)
        steel = next(c for c in check.items if c.item_id == catalog.steel.id)

        assert steel.status is ItemAvailability.CREATED_NO_STOCK
        assert steel.record_id is not None
        created = InventorySelector(session).find_record(catalog.steel.id, project_id)
        assert created.quantity_on_hand == Decimal("0")

    def test_insufficient_stock(
        self, mrr_service, inventory_service, approved_mrr, stock_record, catalog, project_id, actor_id
    ):
        inventory_service.create_record(
            catalog.steel.id, project_id, None, actor_id, initial_quantity=Decimal("150")
        )
        check = mrr_service.check_inventory(approved_mrr.id, actor_id)
        steel = next(c for c in check.items if c.item_id == catalog.steel.id)

        assert check.readiness is MrrReadiness.INSUFFICIENT_STOCK
        assert steel.status is ItemAvailability.INSUFFICIENT_STOCK
        assert steel.available_quantity == Decimal("150")

    def test_ready_for_issue(
        self, mrr_service, inventory_service, approved_mrr, stock_record, catalog, project_id, actor_id
    ):
        inventory_service.create_record(
            catalog.steel.id, project_id, None, actor_id, initial_quantity=Decimal("200")
        )
        check = mrr_service.check_inventory(approved_mrr.id, actor_id)
        assert check.readiness is MrrReadiness.READY_FOR_ISSUE
        assert check.all_available

    def test_warehouse_scoping(self, mrr_service, approved_mrr, stock_record, actor_id, warehouse_id):
        # stock_record has no warehouse, so the warehouse pool is empty
        check = mrr_service.check_inventory(approved_mrr.id, actor_id, warehouse_id=warehouse_id)
        assert check.count(ItemAvailability.NOT_IN_INVENTORY) == 2
