"""
Structured JSON logging for the rumbo kernel.

Every record under the ``rumbo_kernel`` logger is written as one JSON
object per line.  Messages are snake_case event names
(``transfer_started``, ``exchange_rate_served_stale``); the details travel
in ``extra``.  Request-scoped fields held in ``LogContext`` (owner,
transfer, correlation id) are merged into every record emitted while they
are bound.

Usage::

    logger = get_logger("services.transfer")
    with LogContext.bind(owner_id=owner_id, transfer_id=str(transfer_id)):
        logger.info("transfer_started", extra={"amount": str(amount)})
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
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "rumbo_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "owner_id", "product_id", "transfer_id")

_context: ContextVar[dict[str, str]] = ContextVar("rumbo_log_context", default={})


def _merged(fields: dict[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context fields: {sorted(unknown)}")
    current = dict(_context.get())
    current.update({k: v for k, v in fields.items() if v is not None})
    return current


class LogContext:
    """
    Request-scoped log fields, isolated per thread and per asyncio task.

    Only ``correlation_id``, ``owner_id``, ``product_id`` and
    ``transfer_id`` are accepted.  None values leave a field untouched.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        _context.set(_merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: str | None) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore."""
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, str | None]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
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
    # RumboError subclasses keep their structured data as attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, then context and extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger named ``rumbo_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``rumbo_kernel`` logger.

    Only the first call has an effect; later calls return immediately, so
    both the engine setup and the settings bridge may call it.
    """
    global _configured, _handler
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    _handler = handler


def reset_logging() -> None:
    """Undo ``configure_logging``.  FOR TESTING ONLY."""
    global _configured, _handler
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    # Handlers attached by anyone else (pytest's capture) stay in place
    if _handler is not None:
        root.removeHandler(_handler)
        _handler = None
    root.setLevel(logging.WARNING)
