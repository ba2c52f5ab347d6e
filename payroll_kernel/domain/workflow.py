"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, plus ``next_state()``,
the single function every service uses to validate a status change.
Pay runs, leave requests, terminations, monthly filings and
reconciliations each declare one ``Workflow``; no service compares
status strings on its own.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* A status change not listed in ``transitions`` raises ``InvalidStateError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from payroll_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``audited=True`` marks transitions that must emit an audit event in the
    same transaction as the status change.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    audited: bool = True


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"unknown state ({t.from_state} -> {t.to_state})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action!r}"
                )

    def find(self, current_state: str, action: str) -> Transition | None:
        """Return the transition for ``action`` out of ``current_state``, if any."""
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        return None

    def actions_from(self, current_state: str) -> tuple[str, ...]:
        """Actions that are legal from ``current_state``."""
        return tuple(t.action for t in self.transitions if t.from_state == current_state)


def next_state(
    workflow: Workflow,
    current_state: str | Enum,
    action: str,
    *,
    entity_type: str,
    entity_id: object,
) -> Transition:
    """Validate ``action`` against ``workflow`` and return the transition.

    Preconditions: ``current_state`` is a state of ``workflow`` (an Enum
        member is accepted and compared by ``.value``).
    Postconditions: the returned transition's ``from_state`` equals
        ``current_state``.

    Raises:
        InvalidStateError: If no transition for ``action`` leaves
            ``current_state``.
    """
    state = current_state.value if isinstance(current_state, Enum) else current_state
    transition = workflow.find(state, action)
    if transition is None:
        raise InvalidStateError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            current_state=state,
            action=action,
        )
    return transition
