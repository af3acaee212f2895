"""
Structured JSON logging for the settlement kernel.

Every kernel module logs through ``get_logger(__name__-ish)`` into the
``settlement_kernel`` hierarchy.  Each record is rendered as one JSON
object carrying:

    ts, level, logger, message          always
    correlation_id, actor_id,           when bound by SettlementEngine
    project_id, pay_application_id,
    operation
    <extra=...> keys                    whatever the call site passed
    exc_* fields                        when exc_info is attached

Engine operations bind the request fields once with ``LogContext.bind``;
services below never pass them by hand.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "settlement_kernel"

# ---------------------------------------------------------------------------
# Request-scoped context
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("settlement_log_context", default=_EMPTY)


class LogContext:
    """
    Context fields merged into every record emitted in the current task.

    The fields live in one immutable mapping per context, so a
    ``bind`` block restores exactly what was there before it, including
    absence.
    """

    FIELDS: tuple[str, ...] = (
        "correlation_id",
        "actor_id",
        "project_id",
        "pay_application_id",
        "operation",
    )

    @classmethod
    def _merged(cls, values: dict[str, str | None]) -> Mapping[str, str]:
        unknown = set(values) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(_context.get())
        merged.update({k: v for k, v in values.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **values: str | None) -> None:
        """Set fields for the rest of the current context. None leaves a field as is."""
        _context.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **values: str | None) -> "_Binding":
        """Context manager: set fields on entry, restore the previous mapping on exit."""
        return _Binding(cls._merged(values))


class _Binding:

    def __init__(self, mapping: Mapping[str, str]):
        self._mapping = mapping
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(self._mapping)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    # Money must keep its exact digits.
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        out.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RESERVED and key not in out
        )
        if record.exc_info and record.exc_info[1] is not None:
            out.update(self._exception_fields(record))
        return json.dumps(out, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # SettlementKernelError subclasses keep their context as attributes
        fields.update(
            (f"exc_{name}", value) for name, value in getattr(exc, "__dict__", {}).items()
            if not name.startswith("_")
        )
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``settlement_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``settlement_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.  The
    hierarchy does not propagate to the root logger, so host applications
    keep their own formatting.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``. Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
