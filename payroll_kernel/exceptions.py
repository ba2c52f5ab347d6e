"""
Typed Exception Hierarchy for the Payroll Kernel.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
(not just a message string).

    try:
        ledger.submit_request(...)
    except InsufficientBalanceError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- ValidationError
    +-- EntityNotFoundError
    +-- InvalidStateError
    |
    +-- DomainRuleError
    |   +-- InsufficientBalanceError
    |   +-- NegativeNetPayError
    |   +-- HasEmployeeErrorsError
    |   +-- CannotDeleteFinalizedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- CalculationCancelledError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_ERROR            | Malformed input, missing attachment, bad dates
                | ENTITY_NOT_FOUND            | Unknown pay run, request, employee, ...
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Action not allowed from the current status
----------------|-----------------------------|-----------------------------------------
Domain rules    | INSUFFICIENT_BALANCE        | Leave request exceeds available days
                | NEGATIVE_NET_PAY            | Deductions exceed gross pay
                | HAS_EMPLOYEE_ERRORS         | Finalize attempted with per-employee errors
                | CANNOT_DELETE_FINALIZED     | Delete attempted on a finalized pay run
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Optimistic version conflict (retryable)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Edit of finalized/submitted/audit rows
----------------|-----------------------------|-----------------------------------------
Calculation     | CALCULATION_CANCELLED       | Pay run calculation cancelled mid-batch
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
"""

from decimal import Decimal


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.  ``retryable`` tells callers whether the same
    request may succeed if simply re-issued.
    """

    code: str = "PAYROLL_KERNEL_ERROR"
    retryable: bool = False


# Input / lookup exceptions


class ValidationError(PayrollKernelError):
    """Input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class EntityNotFoundError(PayrollKernelError):
    """Entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(PayrollKernelError):
    """Requested action is not a legal transition from the current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state {current_state}"
        )


# Domain rule exceptions


class DomainRuleError(PayrollKernelError):
    """Base exception for business-rule violations."""

    code: str = "DOMAIN_RULE_ERROR"


class InsufficientBalanceError(DomainRuleError):
    """Leave request would drive a non-negative leave type below zero."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        employee_id: str,
        leave_type_id: str,
        available: Decimal,
        requested: Decimal,
    ):
        self.employee_id = employee_id
        self.leave_type_id = leave_type_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient leave balance for employee {employee_id}: "
            f"available {available}, requested {requested}"
        )


class NegativeNetPayError(DomainRuleError):
    """Deductions exceed gross pay."""

    code: str = "NEGATIVE_NET_PAY"

    def __init__(
        self,
        employee_id: str,
        gross_pay: Decimal,
        total_deductions: Decimal,
    ):
        self.employee_id = employee_id
        self.gross_pay = gross_pay
        self.total_deductions = total_deductions
        super().__init__(
            f"Net pay for employee {employee_id} would be negative: "
            f"gross {gross_pay}, deductions {total_deductions}"
        )


class HasEmployeeErrorsError(DomainRuleError):
    """Pay run cannot be finalized while employees carry errors."""

    code: str = "HAS_EMPLOYEE_ERRORS"

    def __init__(self, pay_run_id: str, employees_with_errors: int):
        self.pay_run_id = pay_run_id
        self.employees_with_errors = employees_with_errors
        super().__init__(
            f"Pay run {pay_run_id} has {employees_with_errors} "
            "employee(s) with errors"
        )


class CannotDeleteFinalizedError(DomainRuleError):
    """Finalized pay runs are permanent."""

    code: str = "CANNOT_DELETE_FINALIZED"

    def __init__(self, pay_run_id: str):
        self.pay_run_id = pay_run_id
        super().__init__(f"Pay run {pay_run_id} is finalized and cannot be deleted")


# Concurrency-related exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrentModificationError(ConcurrencyError):
    """Optimistic version conflict: another writer committed first."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Finalized pay runs and payslips, completed terminations, submitted
    filings and audit events are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class CalculationCancelledError(PayrollKernelError):
    """Pay run calculation was cancelled; the run was returned to draft."""

    code: str = "CALCULATION_CANCELLED"
    retryable: bool = True

    def __init__(self, pay_run_id: str, processed: int, total: int):
        self.pay_run_id = pay_run_id
        self.processed = processed
        self.total = total
        super().__init__(
            f"Calculation of pay run {pay_run_id} cancelled after "
            f"{processed} of {total} employees"
        )


# Audit-related exceptions


class AuditError(PayrollKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
