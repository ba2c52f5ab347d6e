"""
Payroll Modules.

Aggregate roots of the payroll core, each in its own package:
- employees: the employee master seam (profile, bank and tax data)
- leave: leave types, balances, requests and the leave ledger
- payroll: pay runs, payslips and the pay run orchestrator
- termination: terminations and settlement payouts
- filings: monthly filings and bi-annual reconciliations

Each package contains:
- Domain models (frozen DTOs, the nouns)
- Workflows (state machines)
- ORM persistence models
- A service owning its transactions
"""
