"""Structured JSON logging for the approval kernel."""

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
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Request-scoped log fields, safe across threads and tasks.

    The orchestrator binds ``correlation_id`` (reusing one the host already
    bound), ``actor_id`` and the approval/step/kind identifiers so every
    record emitted while handling one call can be joined back together.
    """

    FIELDS = (
        "correlation_id",
        "approval_id",
        "step_id",
        "actor_id",
        "workflow_kind",
    )

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"log_{name}", default=None) for name in FIELDS
    }

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set known fields.  None values and unknown names are ignored."""
        for name, val in fields.items():
            var = cls._vars.get(name)
            if var is not None and val is not None:
                var.set(str(val))

    @classmethod
    def get(cls, name: str) -> str | None:
        var = cls._vars.get(name)
        return var.get() if var is not None else None

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Return all bound fields."""
        return {
            name: var.get() for name, var in cls._vars.items()
            if var.get() is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_LogContextManager":
        """Context manager that sets fields on entry and restores on exit."""
        return _LogContextManager(fields)


class _LogContextManager:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, val in self._fields.items():
            var = LogContext._vars.get(name)
            if var is not None and val is not None:
                self._tokens.append((var, var.set(str(val))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Key precedence: envelope, then bound ``LogContext`` fields, then the
    record's ``extra``.  An ``extra`` key never overwrites context.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """``exc_*`` keys; kernel errors contribute their code and attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, val in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = val
    return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_ROOT = "approval_kernel"
_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``approval_kernel`` namespace."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to ``approval_kernel``.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(target)


def reset_logging() -> None:
    """Undo configure_logging().  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
