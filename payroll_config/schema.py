"""
Statutory Configuration Schema (``payroll_config.schema``).

Defines the structure and defaults for the statutory rules applied by the
calculators: income-tax withholding, unemployment insurance (UIF), skills
development levy (SDL), working-day conventions and severance.  Defaults
follow the rules the payroll office applied before configuration was
externalized; override them per company from YAML:

    config = load_statutory_config(Path("company/statutory.yaml"))
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Self

from payroll_kernel.logging_config import get_logger

logger = get_logger("config.schema")

VALID_TAX_METHODS = {"flat", "brackets"}


def _dec(value: Any) -> Decimal:
    if isinstance(value, float):
        # YAML reads 0.25 as float; go through str to keep the literal digits
        return Decimal(str(value))
    return Decimal(value) if not isinstance(value, Decimal) else value


@dataclass(frozen=True)
class TaxBracket:
    """One band of the annual tax table.

    ``upper_limit`` is the inclusive annual income ceiling of the band; the
    last band has ``upper_limit=None``.
    """
    upper_limit: Decimal | None
    rate: Decimal

    def __post_init__(self):
        if self.rate < 0 or self.rate > 1:
            raise ValueError(f"tax bracket rate must be between 0 and 1, got {self.rate}")
        if self.upper_limit is not None and self.upper_limit <= 0:
            raise ValueError("tax bracket upper_limit must be positive")


@dataclass(frozen=True)
class StatutoryConfig:
    """
    Configuration schema for statutory deductions and settlement rules.

    Monetary caps are monthly amounts and are scaled to the pay frequency by
    the calculators.
    """

    currency: str = "ZAR"

    # Income tax withholding (PAYE)
    tax_method: str = "flat"
    tax_flat_rate: Decimal = Decimal("0.25")
    tax_brackets: tuple[TaxBracket, ...] = field(default_factory=tuple)

    # Unemployment insurance (employee and matching employer share)
    uif_rate: Decimal = Decimal("0.01")
    uif_monthly_cap: Decimal = Decimal("177.12")

    # Skills development levy (employer only)
    sdl_rate: Decimal = Decimal("0.01")

    # Working-time conventions
    average_monthly_working_days: Decimal = Decimal("21.67")
    standard_monthly_hours: Decimal = Decimal("160")
    overtime_multiplier: Decimal = Decimal("1.5")

    # Termination
    severance_weeks_per_year: Decimal = Decimal("1")
    default_notice_period_days: int = 30

    # Tax year and leave
    tax_year_start_month: int = 3
    annual_leave_code: str = "ANNUAL"

    def __post_init__(self):
        if self.tax_method not in VALID_TAX_METHODS:
            raise ValueError(
                f"tax_method must be one of {VALID_TAX_METHODS}, got '{self.tax_method}'"
            )
        if not (0 <= self.tax_flat_rate <= 1):
            raise ValueError("tax_flat_rate must be between 0 and 1")
        if self.tax_method == "brackets":
            if not self.tax_brackets:
                raise ValueError("tax_method 'brackets' requires at least one tax bracket")
            limits = [b.upper_limit for b in self.tax_brackets]
            if limits[-1] is not None:
                raise ValueError("the last tax bracket must be open-ended (upper_limit null)")
            bounded = limits[:-1]
            if None in bounded or bounded != sorted(bounded):
                raise ValueError("tax brackets must be sorted by upper_limit ascending")
        if not (0 <= self.uif_rate <= 1) or self.uif_monthly_cap < 0:
            raise ValueError("uif_rate must be between 0 and 1 and uif_monthly_cap non-negative")
        if not (0 <= self.sdl_rate <= 1):
            raise ValueError("sdl_rate must be between 0 and 1")
        if self.average_monthly_working_days <= 0:
            raise ValueError("average_monthly_working_days must be positive")
        if self.standard_monthly_hours <= 0:
            raise ValueError("standard_monthly_hours must be positive")
        if self.overtime_multiplier < 1:
            raise ValueError("overtime_multiplier cannot be below 1")
        if self.severance_weeks_per_year < 0:
            raise ValueError("severance_weeks_per_year cannot be negative")
        if self.default_notice_period_days < 0:
            raise ValueError("default_notice_period_days cannot be negative")
        if not (1 <= self.tax_year_start_month <= 12):
            raise ValueError("tax_year_start_month must be between 1 and 12")

        logger.debug(
            "statutory_config_initialized",
            extra={
                "tax_method": self.tax_method,
                "uif_monthly_cap": str(self.uif_monthly_cap),
                "tax_year_start_month": self.tax_year_start_month,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the built-in statutory defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. parsed YAML)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown statutory config keys: {unknown}")

        decimal_fields = {
            f.name for f in fields(cls) if f.type in (Decimal, "Decimal")
        }
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key == "tax_brackets":
                kwargs[key] = tuple(
                    TaxBracket(
                        upper_limit=(
                            _dec(b["upper_limit"]) if b.get("upper_limit") is not None else None
                        ),
                        rate=_dec(b["rate"]),
                    )
                    for b in value or ()
                )
            elif key in decimal_fields:
                kwargs[key] = _dec(value)
            else:
                kwargs[key] = value

        logger.info(
            "statutory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "tax_brackets":
                data[f.name] = [
                    {
                        "upper_limit": None if b.upper_limit is None else str(b.upper_limit),
                        "rate": str(b.rate),
                    }
                    for b in value
                ]
            elif isinstance(value, Decimal):
                data[f.name] = str(value)
            else:
                data[f.name] = value
        return data
