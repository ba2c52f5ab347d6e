"""
Payroll Kernel

Shared foundation for the payroll core:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Injectable clock and business-day calendar
- Workflow state machines validated by a single transition function
- SQLAlchemy base, engine and immutability listeners
- Hash-chained audit trail
"""

__version__ = "0.1.0"
