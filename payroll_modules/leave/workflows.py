"""Leave Workflows.

State machine for leave request decisions.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

LEAVE_NOT_STARTED = Guard(
    name="leave_not_started",
    description="Approved leave can be cancelled only before its start date",
)


# -----------------------------------------------------------------------------
# Leave Request Workflow
# -----------------------------------------------------------------------------

LEAVE_REQUEST_WORKFLOW = Workflow(
    name="leave_request",
    description="Leave request approval lifecycle",
    initial_state="pending",
    states=("pending", "approved", "rejected", "cancelled"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel", guard=LEAVE_NOT_STARTED),
    ),
    terminal_states=("rejected", "cancelled"),
)

logger.info(
    "leave_request_workflow_registered",
    extra={
        "workflow_name": LEAVE_REQUEST_WORKFLOW.name,
        "state_count": len(LEAVE_REQUEST_WORKFLOW.states),
        "transition_count": len(LEAVE_REQUEST_WORKFLOW.transitions),
        "initial_state": LEAVE_REQUEST_WORKFLOW.initial_state,
    },
)
