"""
approval_engines.tracer -- Engine invocation tracer emitting APPROVAL_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine function with one structured
    log record carrying the engine name and version, a fingerprint of
    selected keyword inputs, and the call duration.

Architecture position:
    Engines -- support for the pure decision layer.  Emits a log record
    only; the wrapped function stays free of I/O.

Usage:
    from approval_engines.tracer import traced_engine

    @traced_engine("chain_policy", "1.0", fingerprint_fields=("decision",))
    def plan_transition(steps, step, decision, requires_all_steps):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

# Kept under the kernel namespace so configure_logging() picks it up.
_logger = logging.getLogger("approval_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, float, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) of the named keyword arguments.

    Fields absent from ``kwargs`` are recorded as ``null``.
    """
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that logs APPROVAL_ENGINE_TRACE around an engine call."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "APPROVAL_ENGINE_TRACE",
                extra={
                    "trace_type": "APPROVAL_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
