"""Termination Workflows.

Forward-only lifecycle of an employee termination.  ``completed`` is
terminal; the settlement may be re-saved while ``pending_payroll``.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.termination.workflows")


NON_NEGATIVE_NET_PAY = Guard(
    name="non_negative_net_pay",
    description="Saved settlement has net pay of zero or more",
)

TERMINATION_WORKFLOW = Workflow(
    name="termination",
    description="Employee termination and final settlement",
    initial_state="draft",
    states=("draft", "pending_payroll", "completed"),
    transitions=(
        Transition("draft", "pending_payroll", action="save_pay"),
        Transition("pending_payroll", "pending_payroll", action="save_pay"),
        Transition(
            "pending_payroll", "completed", action="finalize", guard=NON_NEGATIVE_NET_PAY,
        ),
    ),
    terminal_states=("completed",),
)

logger.info(
    "termination_workflow_registered",
    extra={
        "workflow_name": TERMINATION_WORKFLOW.name,
        "state_count": len(TERMINATION_WORKFLOW.states),
        "transition_count": len(TERMINATION_WORKFLOW.transitions),
    },
)
