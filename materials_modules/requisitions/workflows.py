"""
Requisition Workflows.

State machine for Material Requirement Requests.
"""

from materials_kernel.domain.workflow import Guard, Transition, Workflow
from materials_kernel.logging_config import get_logger

logger = get_logger("modules.requisitions.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_ITEMS = Guard(
    name="has_items",
    description="MRR lists at least one item",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A rejection reason is recorded",
)


# -----------------------------------------------------------------------------
# MRR Workflow
# -----------------------------------------------------------------------------

MRR_WORKFLOW = Workflow(
    name="mrr",
    description="Material requirement request lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "SUBMITTED",
        "APPROVED",
        "REJECTED",
    ),
    transitions=(
        Transition("DRAFT", "SUBMITTED", action="submit", guard=HAS_ITEMS),
        Transition("SUBMITTED", "APPROVED", action="approve"),
        Transition("SUBMITTED", "REJECTED", action="reject", guard=REASON_GIVEN),
    ),
    terminal_states=("APPROVED", "REJECTED"),
)

logger.info(
    "requisitions_mrr_workflow_registered",
    extra={
        "workflow_name": MRR_WORKFLOW.name,
        "state_count": len(MRR_WORKFLOW.states),
        "transition_count": len(MRR_WORKFLOW.transitions),
        "initial_state": MRR_WORKFLOW.initial_state,
    },
)
