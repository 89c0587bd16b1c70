"""
Transfer Workflows.

State machine for stock moving from a branch to a destination warehouse:
two sequential reviews, then shipment (stock leaves the origin) and
receipt (stock arrives at the destination).  Cancelling a shipped transfer
puts the shipped quantities back at the origin.
"""

from movement_kernel.domain.workflow import (
    Guard,
    LedgerEffect,
    RoleRequirement,
    Transition,
    Workflow,
)
from movement_kernel.logging_config import get_logger

logger = get_logger("modules.transfer.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Origin holds enough on-hand stock for every line",
)


# -----------------------------------------------------------------------------
# Roles
# -----------------------------------------------------------------------------

REQUESTER = RoleRequirement("requester", scope_field="origin_branch_id")
BRANCH_REVIEWER = RoleRequirement("branch_reviewer", scope_field="origin_branch_id")
WAREHOUSE_REVIEWER = RoleRequirement("warehouse_reviewer", scope_field="destination_id")
SHIPPER = RoleRequirement("shipper", scope_field="origin_branch_id")
RECEIVER = RoleRequirement("receiver", scope_field="destination_id")

SUBMIT_ROLES = (REQUESTER,)
CANCEL_ROLES = (BRANCH_REVIEWER, WAREHOUSE_REVIEWER)


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

TRANSFER_WORKFLOW = Workflow(
    name="transfer",
    description="Inter-branch stock transfer lifecycle",
    initial_state="branch_pending",
    states=(
        "branch_pending",
        "warehouse_pending",
        "processing",
        "shipped",
        "completed",
        "rejected",
        "cancelled",
    ),
    transitions=(
        Transition("branch_pending", "warehouse_pending", action="branch_approve", roles=(BRANCH_REVIEWER,)),
        Transition("branch_pending", "rejected", action="branch_reject", roles=(BRANCH_REVIEWER,)),
        Transition("warehouse_pending", "processing", action="warehouse_approve", roles=(WAREHOUSE_REVIEWER,)),
        Transition("warehouse_pending", "rejected", action="warehouse_reject", roles=(WAREHOUSE_REVIEWER,)),
        Transition(
            "processing", "shipped", action="ship",
            roles=(SHIPPER,), guard=STOCK_AVAILABLE,
            ledger_effect=LedgerEffect.DECREASE_ORIGIN,
        ),
        Transition(
            "shipped", "completed", action="receive",
            roles=(RECEIVER,), ledger_effect=LedgerEffect.INCREASE_DESTINATION,
        ),
        Transition("branch_pending", "cancelled", action="cancel", roles=CANCEL_ROLES, allow_requester=True),
        Transition("warehouse_pending", "cancelled", action="cancel", roles=CANCEL_ROLES),
        Transition("processing", "cancelled", action="cancel", roles=CANCEL_ROLES),
        # Compensates the shipment decrement.
        Transition(
            "shipped", "cancelled", action="cancel",
            roles=CANCEL_ROLES, ledger_effect=LedgerEffect.RESTORE_ORIGIN,
        ),
    ),
    terminal_states=("completed", "rejected", "cancelled"),
)

logger.info(
    "transfer_workflow_registered",
    extra={
        "workflow_name": TRANSFER_WORKFLOW.name,
        "state_count": len(TRANSFER_WORKFLOW.states),
        "transition_count": len(TRANSFER_WORKFLOW.transitions),
        "initial_state": TRANSFER_WORKFLOW.initial_state,
    },
)
