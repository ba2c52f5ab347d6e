"""
JSON codec for earning/deduction lines (``payroll_modules._line_codec``).

Payslip lines, payslip inputs and employee recurring lines are stored as
JSON on their owning rows.  Decimals travel as strings so a stored amount
reads back exactly.
"""

from decimal import Decimal
from typing import Any

from payroll_engines.compensation import (
    ContributionLine,
    DeductionInput,
    DeductionLine,
    EarningInput,
    EarningLine,
)


def _dec(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def earning_input_to_dict(item: EarningInput) -> dict[str, Any]:
    return {
        "code": item.code,
        "name": item.name,
        "amount": _str(item.amount),
        "hours": _str(item.hours),
        "rate": _str(item.rate),
        "taxable": item.taxable,
    }


def earning_input_from_dict(data: dict[str, Any]) -> EarningInput:
    return EarningInput(
        code=data["code"],
        name=data["name"],
        amount=_dec(data.get("amount")),
        hours=_dec(data.get("hours")),
        rate=_dec(data.get("rate")),
        taxable=data.get("taxable", True),
    )


def deduction_input_to_dict(item: DeductionInput) -> dict[str, Any]:
    return {
        "code": item.code,
        "name": item.name,
        "amount": _str(item.amount),
        "rate": _str(item.rate),
        "is_required": item.is_required,
        "is_skipped": item.is_skipped,
    }


def deduction_input_from_dict(data: dict[str, Any]) -> DeductionInput:
    return DeductionInput(
        code=data["code"],
        name=data["name"],
        amount=_dec(data.get("amount")),
        rate=_dec(data.get("rate")),
        is_required=data.get("is_required", False),
        is_skipped=data.get("is_skipped", False),
    )


def earning_line_to_dict(line: EarningLine) -> dict[str, Any]:
    return {
        "code": line.code,
        "name": line.name,
        "amount": str(line.amount),
        "taxable": line.taxable,
        "is_required": line.is_required,
        "hours": _str(line.hours),
        "rate": _str(line.rate),
    }


def earning_line_from_dict(data: dict[str, Any]) -> EarningLine:
    return EarningLine(
        code=data["code"],
        name=data["name"],
        amount=Decimal(data["amount"]),
        taxable=data.get("taxable", True),
        is_required=data.get("is_required", False),
        hours=_dec(data.get("hours")),
        rate=_dec(data.get("rate")),
    )


def deduction_line_to_dict(line: DeductionLine) -> dict[str, Any]:
    return {
        "code": line.code,
        "name": line.name,
        "amount": str(line.amount),
        "is_statutory": line.is_statutory,
        "is_required": line.is_required,
        "is_skipped": line.is_skipped,
    }


def deduction_line_from_dict(data: dict[str, Any]) -> DeductionLine:
    return DeductionLine(
        code=data["code"],
        name=data["name"],
        amount=Decimal(data["amount"]),
        is_statutory=data.get("is_statutory", False),
        is_required=data.get("is_required", False),
        is_skipped=data.get("is_skipped", False),
    )


def contribution_line_to_dict(line: ContributionLine) -> dict[str, Any]:
    return {"code": line.code, "name": line.name, "amount": str(line.amount)}


def contribution_line_from_dict(data: dict[str, Any]) -> ContributionLine:
    return ContributionLine(code=data["code"], name=data["name"], amount=Decimal(data["amount"]))
