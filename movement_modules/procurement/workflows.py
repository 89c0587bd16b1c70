"""
Procurement Workflows.

State machine for supplier purchases entering a branch:
requested -> approved -> paid -> completed, with rejection while under
review and cancellation up to payment.
"""

from movement_kernel.domain.workflow import (
    LedgerEffect,
    RoleRequirement,
    Transition,
    Workflow,
)
from movement_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Roles
# -----------------------------------------------------------------------------

REQUESTER = RoleRequirement("requester", scope_field="destination_id")
APPROVER = RoleRequirement("procurement_approver")
ACCOUNTANT = RoleRequirement("accountant")
RECEIVER = RoleRequirement("receiver", scope_field="destination_id")

SUBMIT_ROLES = (REQUESTER,)


# -----------------------------------------------------------------------------
# Procurement Workflow
# -----------------------------------------------------------------------------

PROCUREMENT_WORKFLOW = Workflow(
    name="procurement",
    description="Supplier purchase request lifecycle",
    initial_state="requested",
    states=(
        "requested",
        "approved",
        "paid",
        "completed",
        "rejected",
        "cancelled",
    ),
    transitions=(
        Transition("requested", "approved", action="approve", roles=(APPROVER,)),
        Transition("requested", "rejected", action="reject", roles=(APPROVER,)),
        Transition("approved", "rejected", action="revoke", roles=(APPROVER,)),
        Transition("approved", "paid", action="confirm_payment", roles=(ACCOUNTANT,)),
        Transition(
            "paid", "completed", action="confirm_receipt",
            roles=(RECEIVER,), ledger_effect=LedgerEffect.INCREASE_DESTINATION,
        ),
        Transition("requested", "cancelled", action="cancel", roles=(APPROVER,), allow_requester=True),
        Transition("approved", "cancelled", action="cancel", roles=(APPROVER,)),
        Transition("paid", "cancelled", action="cancel", roles=(APPROVER,)),
    ),
    terminal_states=("completed", "rejected", "cancelled"),
)

logger.info(
    "procurement_workflow_registered",
    extra={
        "workflow_name": PROCUREMENT_WORKFLOW.name,
        "state_count": len(PROCUREMENT_WORKFLOW.states),
        "transition_count": len(PROCUREMENT_WORKFLOW.transitions),
        "initial_state": PROCUREMENT_WORKFLOW.initial_state,
    },
)
