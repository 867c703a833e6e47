"""
condo_kernel.logging_config -- Structured JSON logging.

Responsibility:
    One JSON object per log line under the ``condo_kernel`` logger
    namespace, enriched with the reconciliation context (run, deposit,
    house, manual case, actor) bound by the services.

Architecture position:
    Kernel -- imported by every layer.  Depends on nothing but stdlib.

Invariants enforced:
    - Context fields are ContextVars, so parallel reconciliation workers
      never see each other's deposit or run ids.
    - ``configure_logging`` installs exactly one handler no matter how
      often it is called.

Audit relevance:
    Every confirmation, allocation and manual decision is reconstructable
    from the log stream by ``run_id``, ``deposit_id`` or ``case_id``.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import os
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

LEVEL_ENV_VAR = "CONDO_LOG_LEVEL"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "run_id",
    "deposit_id",
    "house_id",
    "case_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"condo_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context_vars[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name!r}") from None


class LogContext:
    """Reconciliation-scoped log fields, safe across threads and tasks.

    Values are stored as strings; UUIDs and house numbers passed to
    ``set`` or ``bind`` are stringified.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields. ``None`` values are ignored."""
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    def bind(**fields: Any) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore."""
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, Any]):
        for name in fields:
            _context_var(name)
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            if value is not None:
                var = _context_vars[name]
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # CondoKernelError subclasses keep their details as public attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON line: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "condo_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the condo_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def _level_from_env(default: int) -> int:
    raw = os.environ.get(LEVEL_ENV_VAR)
    if not raw:
        return default
    level = logging.getLevelName(raw.upper())
    if not isinstance(level, int):
        raise ValueError(f"{LEVEL_ENV_VAR}={raw!r} is not a logging level")
    return level


def configure_logging(
    *,
    level: int | None = None,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the condo_kernel logger (idempotent).

    Without an explicit ``level`` the ``CONDO_LOG_LEVEL`` environment
    variable is consulted, falling back to INFO.
    """
    global _configured
    resolved = level if level is not None else _level_from_env(logging.INFO)
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(resolved)
    root.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again. Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
