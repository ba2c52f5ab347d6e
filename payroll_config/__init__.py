"""
Payroll configuration.

Runtime entry point is ``get_statutory_config()``: the file named by the
``PAYROLL_STATUTORY_CONFIG`` environment variable, or the packaged
defaults.
"""

import os

from payroll_config.loader import compute_checksum, load_statutory_config
from payroll_config.schema import StatutoryConfig, TaxBracket

CONFIG_ENV_VAR = "PAYROLL_STATUTORY_CONFIG"


def get_statutory_config() -> StatutoryConfig:
    """Load the active statutory configuration."""
    return load_statutory_config(os.environ.get(CONFIG_ENV_VAR) or None)


__all__ = [
    "CONFIG_ENV_VAR",
    "StatutoryConfig",
    "TaxBracket",
    "compute_checksum",
    "get_statutory_config",
    "load_statutory_config",
]
