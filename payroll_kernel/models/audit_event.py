"""
Module: payroll_kernel.models.audit_event
Responsibility: ORM model for the hash-chained audit log.  Every status
    transition on a pay run, leave request, termination, filing or
    reconciliation is recorded here in the same transaction as the change.
Architecture position: Kernel > Models.  Imports only db/base.py.

Invariants enforced:
    - Append-only: ORM listeners block UPDATE and DELETE (db/immutability.py).
    - seq is unique and increases monotonically.
    - hash = H(seq | entity_type | entity_id | action | actor_id |
      payload_hash | prev_hash).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions.

    Adding a new action type requires a caller that records it through
    ``AuditorService.record``.
    """

    # Leave lifecycle
    LEAVE_REQUESTED = "leave_requested"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_REJECTED = "leave_rejected"
    LEAVE_CANCELLED = "leave_cancelled"
    LEAVE_BALANCE_ADJUSTED = "leave_balance_adjusted"
    LEAVE_BALANCES_CLOSED = "leave_balances_closed"

    # Pay run lifecycle
    PAY_RUN_CREATED = "pay_run_created"
    PAY_RUN_CALCULATED = "pay_run_calculated"
    PAY_RUN_CALCULATION_CANCELLED = "pay_run_calculation_cancelled"
    PAY_RUN_PAYSLIP_EDITED = "pay_run_payslip_edited"
    PAY_RUN_FINALIZED = "pay_run_finalized"
    PAY_RUN_DELETED = "pay_run_deleted"

    # Termination lifecycle
    TERMINATION_INITIATED = "termination_initiated"
    TERMINATION_PAY_SAVED = "termination_pay_saved"
    TERMINATION_FINALIZED = "termination_finalized"

    # Filing lifecycle
    FILING_PREPARED = "filing_prepared"
    FILING_READY = "filing_ready"
    FILING_SUBMITTED = "filing_submitted"
    FILING_ACCEPTED = "filing_accepted"
    FILING_REJECTED = "filing_rejected"

    # Reconciliation lifecycle
    RECONCILIATION_GENERATED = "reconciliation_generated"
    RECONCILIATION_SUBMITTED = "reconciliation_submitted"
    RECONCILIATION_ACCEPTED = "reconciliation_accepted"
    RECONCILIATION_REJECTED = "reconciliation_rejected"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - prev_hash is None only for the genesis event.
        - before_state/after_state carry the status on either side of the
          transition (None when the entity is created or deleted).

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    before_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    after_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
