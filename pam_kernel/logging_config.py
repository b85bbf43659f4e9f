"""
Module: pam_kernel.logging_config
Responsibility:
    One-JSON-object-per-line logging for graph parsing and execution.

Architecture position:
    Kernel -- imported by every engine module through ``get_logger``.

Record layout:
    - Envelope: ts, level, logger, message.
    - PAM keys, always in this order when present: node_id, node_type,
      position, total, output_node, error_code, cause_code.
    - Execution scope fields bound with ``execution_scope`` (the input
      fingerprint of a traced run, the output node being evaluated, and
      whatever identifiers the caller binds).
    - Remaining ``extra`` fields.
    - For ``exc_info`` records, the raised error: a PamError contributes its
      code and node id, an ExecutionError also its position, total and
      cause code. A key passed explicitly in ``extra`` is never overwritten.
"""

__all__ = [
    "StructuredFormatter",
    "execution_scope",
    "current_scope",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from pam_kernel.exceptions import ExecutionError, PamError

PAM_KEYS: tuple[str, ...] = (
    "node_id",
    "node_type",
    "position",
    "total",
    "output_node",
    "error_code",
    "cause_code",
)

_scope: ContextVar[Mapping[str, Any]] = ContextVar(
    "pam_log_scope", default=MappingProxyType({})
)


@contextmanager
def execution_scope(**fields: Any) -> Iterator[Mapping[str, Any]]:
    """Attach ``fields`` to every record logged inside the block.

    Scopes nest; inner values win and the outer scope is restored on exit.
    ``None`` values are ignored.
    """
    merged = {**_scope.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _scope.set(MappingProxyType(merged))
    try:
        yield _scope.get()
    finally:
        _scope.reset(token)


def current_scope() -> dict[str, Any]:
    return dict(_scope.get())


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    # Decimals keep their exact digits.
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"error_type": type(exc).__name__, "error_message": str(exc)}
    if isinstance(exc, ExecutionError):
        fields.update(
            node_id=exc.node_id,
            position=exc.position,
            total=exc.total,
            error_code=exc.code,
            cause_code=exc.cause_code,
        )
    elif isinstance(exc, PamError):
        fields["error_code"] = exc.code
        node_id = getattr(exc, "node_id", None)
        if node_id is not None:
            fields["node_id"] = node_id
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        extras = {k: v for k, v in vars(record).items() if k not in _STDLIB_KEYS}
        if record.exc_info and record.exc_info[1] is not None:
            for key, val in _error_fields(record.exc_info[1]).items():
                extras.setdefault(key, val)
            extras["traceback"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in PAM_KEYS:
            if key in extras:
                payload[key] = extras.pop(key)
        for key, val in _scope.get().items():
            payload.setdefault(key, val)
        for key, val in extras.items():
            payload.setdefault(key, val)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "pam_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the pam_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install one JSON handler on the pam_kernel hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
