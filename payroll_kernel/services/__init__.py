from payroll_kernel.services.auditor_service import AuditorService, AuditSink, AuditTrace

__all__ = ["AuditSink", "AuditTrace", "AuditorService"]
