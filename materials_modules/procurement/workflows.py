"""
Procurement Workflows.

State machine for purchase orders.
"""

from materials_kernel.domain.workflow import Guard, Transition, Workflow
from materials_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Purchase order has at least one line",
)

SOME_LINES_OUTSTANDING = Guard(
    name="some_lines_outstanding",
    description="Total received is below total ordered",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Total received has reached total ordered",
)

logger.info(
    "procurement_workflow_guards_defined",
    extra={
        "guards": [
            HAS_LINES.name,
            SOME_LINES_OUTSTANDING.name,
            ALL_LINES_RECEIVED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "APPROVED",
        "PLACED",
        "PARTIALLY_RECEIVED",
        "FULLY_RECEIVED",
        "CLOSED",
        "CANCELLED",
    ),
    transitions=(
        Transition("DRAFT", "APPROVED", action="approve", guard=HAS_LINES),
        # PURCHASE debit to the supplier ledger
        Transition("APPROVED", "PLACED", action="place", posts_ledger=True),
        # Receiving status is derived after each verified receipt; stock is
        # only received against a placed PO
        Transition("PLACED", "PARTIALLY_RECEIVED", action="receive", guard=SOME_LINES_OUTSTANDING),
        Transition("PLACED", "FULLY_RECEIVED", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("PARTIALLY_RECEIVED", "FULLY_RECEIVED", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("FULLY_RECEIVED", "CLOSED", action="close"),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("APPROVED", "CANCELLED", action="cancel"),
        # Compensating ADJUSTMENT credit to the supplier ledger
        Transition("PLACED", "CANCELLED", action="cancel", posts_ledger=True),
    ),
    terminal_states=("CLOSED", "CANCELLED"),
)

logger.info(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)

RECEIVABLE_STATES = PURCHASE_ORDER_WORKFLOW.sources_for("receive")
