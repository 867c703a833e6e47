"""
condo_engines.tracer -- Engine invocation tracer emitting CONDO_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps pure engine calls (house identification,
    deposit matching, allocation planning) with one structured log record
    carrying the engine name and version, a deterministic fingerprint of
    the selected inputs and the duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; engines stay free of I/O.

Invariants enforced:
    - The fingerprint is deterministic: Decimals, dates, UUIDs, enums and
      frozen dataclasses canonicalize to stable strings, dict keys are
      sorted, and the SHA-256 digest is truncated to 16 hex chars.
    - Fingerprint fields may name positional parameters; they are bound
      through the function signature before hashing.

Audit relevance:
    Two reconciliation runs over the same deposits produce the same
    fingerprints, which makes a replay comparable record by record.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_logger = logging.getLogger("condo_kernel.engines.tracer")

TRACE_TYPE = "CONDO_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _canonicalize(value.value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value else "0"
    if isinstance(value, (int, float, str, UUID)):
        return str(value)
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, dict):
        items = sorted((str(k), v) for k, v in value.items())
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple, frozenset, set)):
        seq = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return "[" + ",".join(_canonicalize(v) for v in seq) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """
    SHA-256 prefix (16 hex chars) over the named arguments.

    Missing fields are recorded as "null".
    """
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits CONDO_ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(
                    fingerprint_fields, dict(bound.arguments)
                )

            started = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - started) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
