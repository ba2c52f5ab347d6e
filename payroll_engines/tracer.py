"""
PAYROLL_ENGINE_TRACE records for the pure calculators.

``@traced_engine`` logs one DEBUG record per call with the engine name and
version, a short fingerprint of the named inputs, the elapsed time and
whether the call returned or raised.  Two payslip computations with the
same profile and period share a fingerprint, which is what support looks
for when a recalculated pay run disagrees with the first one.
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
import time
from collections.abc import Callable
from typing import Any

from payroll_kernel.logging_config import get_logger
from payroll_kernel.utils.hashing import canonical_json, sha256_hex

_logger = get_logger("engines.tracer")

TRACE = "PAYROLL_ENGINE_TRACE"


def _reduce(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _reduce(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _reduce(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_reduce(v) for v in value]
    return value


def input_fingerprint(fields: tuple[str, ...], arguments: dict[str, Any]) -> str:
    """16 hex chars over the named arguments; absent ones count as null."""
    return sha256_hex(canonical_json({name: _reduce(arguments.get(name)) for name in fields}))[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = input_fingerprint(fingerprint_fields, dict(bound.arguments))

            outcome = "returned"
            started = time.monotonic()
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                outcome = type(exc).__name__
                raise
            finally:
                _logger.debug(
                    TRACE,
                    extra={
                        "trace_type": TRACE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "outcome": outcome,
                        "duration_ms": round((time.monotonic() - started) * 1000, 2),
                        "function": func.__qualname__,
                    },
                )

        return wrapper

    return decorator
