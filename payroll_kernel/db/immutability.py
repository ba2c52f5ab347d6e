"""
ORM-level immutability enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

  - AuditEvent rows: append-only, never updated or deleted.
  - Rows whose status has reached a locked state, declared by the owning
    module as a ``StatusLock``:
      * finalized pay runs and their payslips
      * completed terminations
      * submitted/accepted monthly filings and reconciliations

A locked row may still leave its locked state through an explicitly
permitted exit (e.g. a filing going submitted -> accepted).  Audit metadata
columns (updated_at, updated_by_id, version) may always change.

If a check fails, ImmutabilityViolationError is raised from the flush and
the transaction must be rolled back by the caller.

To temporarily disable (TESTS ONLY):

    from payroll_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})


@dataclass(frozen=True)
class StatusLock:
    """Declares when rows of ``model`` become read-only.

    ``locked_values`` are values of ``status_attr`` that freeze the row;
    ``permitted_exits`` are (from, to) pairs still allowed out of a locked
    value.
    """

    model: type
    entity_type: str
    locked_values: frozenset
    status_attr: str = "status"
    permitted_exits: frozenset = field(default_factory=frozenset)


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.key not in _METADATA_FIELDS and attr.history.has_changes()
    }


def _make_update_check(lock: StatusLock) -> Callable:
    def _check(mapper, connection, target):
        history = get_history(target, lock.status_attr)
        if history.deleted:
            old_value = history.deleted[0]
            new_value = history.added[0] if history.added else None
            if old_value not in lock.locked_values:
                return
            if (old_value, new_value) in lock.permitted_exits:
                return
            _block(
                lock.entity_type,
                target,
                "UPDATE",
                f"{lock.status_attr} {old_value} is final",
            )
        current = getattr(target, lock.status_attr)
        if current not in lock.locked_values:
            return
        changed = _changed_fields(target)
        if changed:
            _block(
                lock.entity_type,
                target,
                "UPDATE",
                f"{lock.status_attr} {current} is final; attempted to change "
                f"{', '.join(sorted(changed))}",
            )

    return _check


def _make_delete_check(lock: StatusLock) -> Callable:
    def _check(mapper, connection, target):
        history = get_history(target, lock.status_attr)
        persisted = history.deleted[0] if history.deleted else getattr(target, lock.status_attr)
        if persisted in lock.locked_values:
            _block(
                lock.entity_type,
                target,
                "DELETE",
                f"{lock.status_attr} {persisted} is final; row cannot be deleted",
            )

    return _check


def _check_audit_event_immutability(mapper, connection, target):
    """Prevent any updates to AuditEvent records."""
    _block("AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    """Prevent deletion of AuditEvent records."""
    _block("AuditEvent", target, "DELETE", "Audit events are immutable and cannot be deleted")


_registered: list[tuple[type, str, Callable]] = []


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin; ``create_tables()`` does so.
    """
    from payroll_kernel.models.audit_event import AuditEvent
    from payroll_modules._orm_registry import status_locks

    if _registered:
        return

    pairs: list[tuple[type, str, Callable]] = [
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    ]
    for lock in status_locks():
        pairs.append((lock.model, "before_update", _make_update_check(lock)))
        pairs.append((lock.model, "before_delete", _make_delete_check(lock)))

    for target, name, fn in pairs:
        event.listen(target, name, fn)
        _registered.append((target, name, fn))

    logger.debug("immutability_listeners_registered", extra={"count": len(pairs)})


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    while _registered:
        target, name, fn = _registered.pop()
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
