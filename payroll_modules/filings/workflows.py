"""Filing Workflows.

Monthly filings and bi-annual reconciliations only move forward: once
submitted they wait for the tax authority's outcome and never return to
draft.
"""

from payroll_kernel.domain.workflow import Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.filings.workflows")


MONTHLY_FILING_WORKFLOW = Workflow(
    name="monthly_filing",
    description="Monthly employer tax filing",
    initial_state="draft",
    states=("draft", "ready", "submitted", "accepted", "rejected"),
    transitions=(
        Transition("draft", "draft", action="refresh", audited=False),
        Transition("draft", "ready", action="mark_ready"),
        Transition("ready", "submitted", action="submit"),
        Transition("submitted", "accepted", action="accept"),
        Transition("submitted", "rejected", action="reject"),
    ),
    terminal_states=("accepted", "rejected"),
)

RECONCILIATION_WORKFLOW = Workflow(
    name="bi_annual_reconciliation",
    description="Bi-annual reconciliation of payroll tax against monthly filings",
    initial_state="draft",
    states=("draft", "submitted", "accepted", "rejected"),
    transitions=(
        Transition("draft", "draft", action="regenerate"),
        Transition("draft", "submitted", action="submit"),
        Transition("submitted", "accepted", action="accept"),
        Transition("submitted", "rejected", action="reject"),
    ),
    terminal_states=("accepted", "rejected"),
)

for _workflow in (MONTHLY_FILING_WORKFLOW, RECONCILIATION_WORKFLOW):
    logger.info(
        "filing_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
        },
    )
