"""Pay Run Workflows.

State machine for pay run processing.  ``deleted`` is a terminal marker:
the row is removed when the transition fires.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_EMPLOYEE_ERRORS = Guard(
    name="no_employee_errors",
    description="Every in-scope employee calculated without errors",
)

logger.info(
    "pay_run_workflow_guards_defined",
    extra={"guards": [NO_EMPLOYEE_ERRORS.name]},
)


# -----------------------------------------------------------------------------
# Pay Run Workflow
# -----------------------------------------------------------------------------

PAY_RUN_WORKFLOW = Workflow(
    name="pay_run",
    description="Pay run lifecycle",
    initial_state="draft",
    states=("draft", "calculating", "ready", "finalized", "deleted"),
    transitions=(
        Transition("draft", "calculating", action="calculate", audited=False),
        Transition("ready", "calculating", action="calculate", audited=False),
        Transition("calculating", "ready", action="complete_calculation"),
        Transition("calculating", "draft", action="cancel_calculation"),
        Transition("ready", "ready", action="edit_payslip"),
        Transition("ready", "finalized", action="finalize", guard=NO_EMPLOYEE_ERRORS),
        Transition("draft", "deleted", action="delete"),
        Transition("ready", "deleted", action="delete"),
    ),
    terminal_states=("finalized", "deleted"),
)

logger.info(
    "pay_run_workflow_registered",
    extra={
        "workflow_name": PAY_RUN_WORKFLOW.name,
        "state_count": len(PAY_RUN_WORKFLOW.states),
        "transition_count": len(PAY_RUN_WORKFLOW.transitions),
        "initial_state": PAY_RUN_WORKFLOW.initial_state,
    },
)
