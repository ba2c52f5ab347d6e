"""
Hash-chained audit trail for payroll state transitions.

Every leave decision, pay run transition, termination step and filing
submission appends one ``AuditEvent``.  Events are numbered by ``seq`` and
each one stores the hash of its predecessor, so rewriting any stored
payload (or dropping a row) is detected by ``validate_chain``.

``record`` only flushes.  The calling service's unit of work commits the
transition and its audit event together, or neither.  Two writers racing
for the same ``seq`` collide on the unique index; the unit of work turns that
into a retryable ``ConcurrentModificationError``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import AuditChainBrokenError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction, AuditEvent
from payroll_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


class AuditSink(Protocol):
    """What the payroll services need from an audit trail."""

    def record(
        self,
        *,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        before_state: str | Enum | None = None,
        after_state: str | Enum | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        ...


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    before_state: str | None
    after_state: str | None
    payload: dict[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditTraceEntry":
        return cls(
            seq=event.seq,
            action=event.action,
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            before_state=event.before_state,
            after_state=event.after_state,
            payload=event.payload or {},
            hash=event.hash,
        )


@dataclass(frozen=True)
class AuditTrace:
    """One entity's audit events, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


def _state_value(state: str | Enum | None) -> str | None:
    return state.value if isinstance(state, Enum) else state


def _link_hash(event: AuditEvent, payload_hash: str) -> str:
    return hash_audit_event(
        seq=event.seq,
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        actor_id=str(event.actor_id),
        payload_hash=payload_hash,
        prev_hash=event.prev_hash,
    )


class AuditorService:
    """Appends and verifies audit events on the caller's session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _latest(self) -> AuditEvent | None:
        return self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        *,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        before_state: str | Enum | None = None,
        after_state: str | Enum | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append an event after the current chain head and flush it.

        The before/after states are folded into the stored payload so the
        payload hash covers them.
        """
        head = self._latest()
        before = _state_value(before_state)
        after = _state_value(after_state)

        stored_payload = to_json_safe(payload or {})
        stored_payload["before_state"] = before
        stored_payload["after_state"] = after
        payload_hash = hash_payload(stored_payload)

        event = AuditEvent(
            seq=(head.seq if head else 0) + 1,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            before_state=before,
            after_state=after,
            occurred_at=self._clock.now(),
            payload=stored_payload,
            payload_hash=payload_hash,
            prev_hash=head.hash if head else None,
        )
        event.hash = _link_hash(event, payload_hash)
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": event.seq,
            },
        )
        return event

    def validate_chain(self) -> bool:
        """Recompute every link from the stored payloads.

        Raises:
            AuditChainBrokenError: at the first event whose hash or
                back-link does not match.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for event in events:
            if event.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": event.seq, "reason": "prev_hash"})
                raise AuditChainBrokenError(
                    str(event.id), expected_prev or "None", event.prev_hash or "None"
                )
            expected = _link_hash(event, hash_payload(event.payload or {}))
            if event.hash != expected:
                logger.critical("audit_chain_broken", extra={"seq": event.seq, "reason": "hash"})
                raise AuditChainBrokenError(str(event.id), expected, event.hash)
            expected_prev = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_event(event) for event in events),
        )
