"""
Workflow value objects and the document state machines built on them.
"""

import pytest

from materials_kernel.domain.workflow import Transition, Workflow
from materials_kernel.exceptions import (
    InvalidMrrStateError,
    InvalidPoStateError,
    InvalidReceiptStateError,
    InvalidStateTransitionError,
)
from materials_modules.procurement.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    RECEIVABLE_STATES,
)
from materials_modules.receiving.workflows import MATERIAL_RECEIPT_WORKFLOW
from materials_modules.requisitions.workflows import MRR_WORKFLOW


def _toy_workflow(**overrides):
    kwargs = dict(
        name="toy",
        description="toy",
        initial_state="A",
        states=("A", "B", "C"),
        transitions=(
            Transition("A", "B", action="go"),
            Transition("B", "C", action="go"),
            Transition("A", "C", action="skip"),
        ),
        terminal_states=("C",),
    )
    kwargs.update(overrides)
    return Workflow(**kwargs)


class TestWorkflowStructure:

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial state"):
            _toy_workflow(initial_state="Z")

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            _toy_workflow(transitions=(Transition("A", "Z", action="go"),))

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal"):
            _toy_workflow(transitions=(Transition("C", "A", action="reopen"),))

    def test_actions_from(self):
        assert _toy_workflow().actions_from("A") == ("go", "skip")
        assert _toy_workflow().actions_from("C") == ()

    def test_sources_for(self):
        assert _toy_workflow().sources_for("go") == ("A", "B")

    def test_require_returns_transition(self):
        transition = _toy_workflow().require("go", "B", "doc-1")
        assert transition.to_state == "C"

    def test_require_raises_with_required_states(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            _toy_workflow().require("go", "C", "doc-1")
        assert exc_info.value.actual == "C"
        assert exc_info.value.required == "A|B"
        assert exc_info.value.entity_id == "doc-1"

    def test_require_unknown_action(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            _toy_workflow().require("fly", "A", "doc-1")
        assert exc_info.value.required == "<none>"


class TestMrrWorkflow:

    def test_happy_path(self):
        assert MRR_WORKFLOW.require("submit", "DRAFT", "m").to_state == "SUBMITTED"
        assert MRR_WORKFLOW.require("approve", "SUBMITTED", "m").to_state == "APPROVED"

    def test_cannot_approve_draft(self):
        with pytest.raises(InvalidMrrStateError) as exc_info:
            MRR_WORKFLOW.require("approve", "DRAFT", "m", error_cls=InvalidMrrStateError)
        assert exc_info.value.required == "SUBMITTED"
        assert exc_info.value.code == "INVALID_MRR_STATE"

    def test_approved_and_rejected_are_terminal(self):
        assert MRR_WORKFLOW.actions_from("APPROVED") == ()
        assert MRR_WORKFLOW.actions_from("REJECTED") == ()


class TestPurchaseOrderWorkflow:

    def test_place_posts_ledger(self):
        assert PURCHASE_ORDER_WORKFLOW.require("place", "APPROVED", "p").posts_ledger

    def test_cancel_from_placed_posts_ledger(self):
        assert PURCHASE_ORDER_WORKFLOW.require("cancel", "PLACED", "p").posts_ledger
        assert not PURCHASE_ORDER_WORKFLOW.require("cancel", "DRAFT", "p").posts_ledger

    def test_receive_targets(self):
        t = PURCHASE_ORDER_WORKFLOW.require(
            "receive", "PLACED", "p", to_state="PARTIALLY_RECEIVED"
        )
        assert t.to_state == "PARTIALLY_RECEIVED"
        t = PURCHASE_ORDER_WORKFLOW.require(
            "receive", "PARTIALLY_RECEIVED", "p", to_state="FULLY_RECEIVED"
        )
        assert t.to_state == "FULLY_RECEIVED"

    def test_receivable_states(self):
        assert set(RECEIVABLE_STATES) == {"PLACED", "PARTIALLY_RECEIVED"}

    def test_approved_po_cannot_receive(self):
        with pytest.raises(InvalidPoStateError):
            PURCHASE_ORDER_WORKFLOW.require(
                "receive", "APPROVED", "p", error_cls=InvalidPoStateError,
                to_state="FULLY_RECEIVED",
            )

    def test_cannot_cancel_after_receipt(self):
        with pytest.raises(InvalidPoStateError):
            PURCHASE_ORDER_WORKFLOW.require(
                "cancel", "PARTIALLY_RECEIVED", "p", error_cls=InvalidPoStateError
            )


class TestMaterialReceiptWorkflow:

    def test_verify_allowed_from_pending_and_received(self):
        assert MATERIAL_RECEIPT_WORKFLOW.sources_for("verify") == ("PENDING", "RECEIVED")
        assert MATERIAL_RECEIPT_WORKFLOW.require("verify", "PENDING", "r").posts_ledger

    def test_complete_from_approved_does_not_post(self):
        assert not MATERIAL_RECEIPT_WORKFLOW.require("complete", "APPROVED", "r").posts_ledger
        assert MATERIAL_RECEIPT_WORKFLOW.require("complete", "RECEIVED", "r").posts_ledger

    def test_completed_is_terminal(self):
        with pytest.raises(InvalidReceiptStateError):
            MATERIAL_RECEIPT_WORKFLOW.require(
                "verify", "COMPLETED", "r", error_cls=InvalidReceiptStateError
            )
