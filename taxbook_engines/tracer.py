"""
taxbook_engines.tracer -- ENGINE_TRACE records for tax calculations.

Every traced calculation logs one record naming the engine, its version,
the result type, the elapsed time and a fingerprint of the monetary
inputs.  The fingerprint ignores Decimal scale, so ``Decimal("100")`` and
``Decimal("100.00")`` trace identically and a recomputation with the same
ledger figures can be matched to the original run.

Only keyword arguments are fingerprinted; the engines are keyword-only.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

# Engines never import the kernel, so the logger is taken directly.
_logger = logging.getLogger("taxbook.engines.tracer")

FINGERPRINT_LENGTH = 16


def _token(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def input_fingerprint(names: tuple[str, ...], values: dict[str, Any]) -> str:
    """SHA-256 prefix over ``name=value`` pairs in the order given."""
    text = ";".join(f"{name}={_token(values.get(name))}" for name in names)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            _logger.info(
                "ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "result_type": type(result).__name__,
                    "input_fingerprint": input_fingerprint(fingerprint_fields, kwargs),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                },
            )
            return result

        return wrapper

    return decorator
