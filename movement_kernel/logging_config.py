"""
Structured JSON logging for the movement kernel.

Every engine logger lives under ``movement_kernel`` and writes one JSON
object per line.  Records carry the request-scoped fields bound through
``LogContext`` (correlation, actor, request, workflow) so a single
transition can be followed across the store, the ledger and the trace.

Exceptions logged with ``exc_info`` expose their ``code`` and structured
attributes as ``exc_*`` keys; the request snapshot some errors carry is
left out of the payload.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "movement_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "request_id", "workflow")

_fields: ContextVar[dict[str, str] | None] = ContextVar("movement_log_fields", default=None)


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def _merged(updates: dict[str, Any]) -> dict[str, str]:
        unknown = set(updates) - set(_CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(_fields.get() or {})
        merged.update({k: str(v) for k, v in updates.items() if v is not None})
        return merged

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        request_id: str | None = None,
        workflow: str | None = None,
    ) -> None:
        """Set context fields. Only non-None values are updated."""
        _fields.set(cls._merged({
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "request_id": request_id,
            "workflow": workflow,
        }))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Bound fields, in a fixed key order."""
        current = _fields.get() or {}
        return {name: current[name] for name in _CONTEXT_FIELDS if name in current}

    @classmethod
    def clear(cls) -> None:
        _fields.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block, then restore."""
        token = _fields.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _fields.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

# Exception attributes never copied into the payload.
_EXC_SKIP = frozenset({"args", "code", "request"})


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return repr(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in _EXC_SKIP:
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS:
                payload.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``movement_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler (stderr unless given) to the engine logger.  Idempotent."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    engine_logger = logging.getLogger(_LOGGER_PREFIX)
    engine_logger.setLevel(level)
    engine_logger.propagate = False
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    engine_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    engine_logger = logging.getLogger(_LOGGER_PREFIX)
    engine_logger.handlers.clear()
    engine_logger.setLevel(logging.WARNING)
