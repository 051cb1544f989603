"""
Receiving Workflows.

State machine for material receipts.  Stock posts on exactly one of the
``posts_ledger`` transitions per receipt; which ones are open is decided
by ``ReceiptPostingPolicy``.
"""

from materials_kernel.domain.workflow import Guard, Transition, Workflow
from materials_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NOT_YET_POSTED = Guard(
    name="not_yet_posted",
    description="Receipt has not posted stock",
)

COMPLETE_MAY_POST = Guard(
    name="complete_may_post",
    description="Posting policy lets complete post stock when verify was skipped",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A rejection reason is recorded",
)


# -----------------------------------------------------------------------------
# Material Receipt Workflow
# -----------------------------------------------------------------------------

MATERIAL_RECEIPT_WORKFLOW = Workflow(
    name="material_receipt",
    description="Goods received note lifecycle",
    initial_state="PENDING",
    states=(
        "PENDING",
        "RECEIVED",
        "APPROVED",
        "COMPLETED",
        "REJECTED",
    ),
    transitions=(
        Transition("PENDING", "RECEIVED", action="receive"),
        # Verification posts stock and PO line received quantities
        Transition("PENDING", "APPROVED", action="verify", guard=NOT_YET_POSTED, posts_ledger=True),
        Transition("RECEIVED", "APPROVED", action="verify", guard=NOT_YET_POSTED, posts_ledger=True),
        Transition("APPROVED", "COMPLETED", action="complete"),
        Transition("RECEIVED", "COMPLETED", action="complete", guard=COMPLETE_MAY_POST, posts_ledger=True),
        Transition("PENDING", "REJECTED", action="reject", guard=REASON_GIVEN),
        Transition("RECEIVED", "REJECTED", action="reject", guard=REASON_GIVEN),
    ),
    terminal_states=("COMPLETED", "REJECTED"),
)

logger.info(
    "receiving_receipt_workflow_registered",
    extra={
        "workflow_name": MATERIAL_RECEIPT_WORKFLOW.name,
        "state_count": len(MATERIAL_RECEIPT_WORKFLOW.states),
        "transition_count": len(MATERIAL_RECEIPT_WORKFLOW.transitions),
        "initial_state": MATERIAL_RECEIPT_WORKFLOW.initial_state,
    },
)
