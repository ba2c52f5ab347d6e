from payroll_kernel.models.audit_event import AuditAction, AuditEvent

__all__ = ["AuditAction", "AuditEvent"]
