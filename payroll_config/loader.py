"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads statutory YAML files and parses them into the frozen
``payroll_config.schema.StatutoryConfig``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends only on the kernel's
logging; has no dependency on modules or engines.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError`` from the schema.

Audit relevance
---------------
``compute_checksum`` lets an auditor confirm which statutory rule set a
pay run was calculated under.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import StatutoryConfig
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_STATUTORY_PATH = Path(__file__).parent / "defaults" / "statutory.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_statutory_config(path: Path | str | None = None) -> StatutoryConfig:
    """Parse a statutory YAML file (the packaged defaults when ``path`` is None)."""
    source = Path(path) if path is not None else DEFAULT_STATUTORY_PATH
    data = load_yaml_file(source)
    config = StatutoryConfig.from_dict(data)
    logger.info(
        "statutory_config_loaded",
        extra={"path": str(source), "checksum": compute_checksum(config.to_dict())},
    )
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
