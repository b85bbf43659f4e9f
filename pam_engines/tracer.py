"""
pam_engines.tracer -- Engine invocation tracer emitting PAM_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point with one structured
    trace record carrying engine_name, engine_version, input_fingerprint
    and duration_ms. Failed invocations are traced too, with the error code.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only, under ``pam_kernel.engines.tracer``. While the
    wrapped call runs, its input fingerprint is bound into the log execution
    scope, so every record of a traced run can be joined to its trace.

Invariants enforced:
    - Fingerprints are deterministic: arguments are bound by name, rendered
      through ``canonicalize_json`` (sorted keys, normalized Decimals) and
      hashed to a 16 hex character SHA-256 prefix.
    - The decorator never mutates arguments and never alters the result or
      the raised exception.

Failure modes:
    - Fields not present in the call are fingerprinted as ``null``.
    - Objects exposing ``to_definition()`` or ``to_dict()`` are fingerprinted
      through it; anything else falls back to ``str(value)``.

Usage:
    from pam_engines.tracer import traced_engine

    @traced_engine("pam", "1.0", fingerprint_fields=("graph", "context"))
    def execute_graph(graph, context):
        ...
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any

from pam_kernel.logging_config import execution_scope, get_logger
from pam_kernel.utils.hashing import canonicalize_json, short_fingerprint

_logger = get_logger("engines.tracer")


def _fingerprint_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, list, tuple, Mapping)):
        return value
    for attr in ("to_definition", "to_dict"):
        render = getattr(value, attr, None)
        if callable(render):
            return render()
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Deterministic 16-character fingerprint of the selected arguments.

    Postconditions:
        Identical argument values yield identical fingerprints, independent
        of dict ordering and of Decimal representation (1.0 vs 1.00).
    """
    payload = {field: _fingerprint_value(arguments.get(field)) for field in fingerprint_fields}
    return short_fingerprint(canonicalize_json(payload))


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits PAM_ENGINE_TRACE for engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "pam").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Parameter names (positional or keyword) to
            include in the input fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            extra: dict[str, Any] = {
                "trace_type": "PAM_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fp,
                "function": func.__qualname__,
            }
            t0 = time.monotonic()
            try:
                with execution_scope(input_fingerprint=fp or None):
                    result = func(*args, **kwargs)
            except Exception as exc:
                extra["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
                extra["outcome"] = "error"
                extra["error_code"] = getattr(exc, "code", type(exc).__name__)
                _logger.warning("PAM_ENGINE_TRACE", extra=extra)
                raise
            extra["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
            extra["outcome"] = "ok"
            _logger.info("PAM_ENGINE_TRACE", extra=extra)
            return result

        return wrapper

    return decorator
