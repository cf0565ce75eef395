"""Structured JSON logging with correlation and asset context.

Every record carries the request correlation id and, when set, the id of the
footage asset being worked on so worker reports, dispatches and poll ticks for
one asset can be followed across processes.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from dashworld.core.tracing import trace_ids

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
asset_id_var: ContextVar[Optional[str]] = ContextVar("asset_id", default=None)

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))
_CONTEXT_ATTRS = frozenset(("correlation_id", "asset_id"))


def get_correlation_id() -> str:
    """Get the current correlation ID or generate a new one.

    Falls back to the active trace id before minting a fresh UUID.
    """
    cid = correlation_id_var.get()
    if cid is None:
        trace_id, _ = trace_ids()
        if trace_id:
            return trace_id
        cid = str(uuid.uuid4())
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID from the current context."""
    correlation_id_var.set(None)


def bind_asset_id(asset_id: Any) -> None:
    """Tag subsequent log records in this context with a footage asset id."""
    asset_id_var.set(str(asset_id) if asset_id is not None else None)


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object per line.

    Context ids sit at the top level; anything passed through ``extra=``
    lands under ``"extra"``.
    """

    def __init__(
        self,
        include_stack_trace: bool = True,
        include_extra_fields: bool = True,
    ):
        super().__init__()
        self.include_stack_trace = include_stack_trace
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_context_ids(record))
        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info and self.include_stack_trace:
            exc_type, exc_value, exc_tb = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stack_trace": traceback.format_exception(*record.exc_info) if exc_tb else None,
            }

        if self.include_extra_fields:
            extra_fields = _extra_fields(record)
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


def _context_ids(record: logging.LogRecord) -> dict[str, str]:
    ids = {"correlation_id": get_correlation_id()}
    asset_id = getattr(record, "asset_id", None) or asset_id_var.get()
    if asset_id and asset_id != "-":
        ids["asset_id"] = str(asset_id)
    trace_id, span_id = trace_ids()
    if trace_id:
        ids["trace_id"] = trace_id
        ids["span_id"] = span_id
    return ids


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key in _CONTEXT_ATTRS:
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        fields[key] = value
    return fields


class ContextFilter(logging.Filter):
    """Copies the context ids onto records for plain-text format strings."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        if not hasattr(record, "asset_id"):
            record.asset_id = asset_id_var.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route all logging to stdout, as JSON unless ``json_format`` is off."""
    log_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(ContextFilter())

    if json_format:
        formatter = StructuredFormatter(include_stack_trace=include_stack_trace)
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s "
            "[%(correlation_id)s] [asset=%(asset_id)s] %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx", "botocore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _log(
    logger: logging.Logger,
    level: int,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    extra["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=extra)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error, with the exception's traceback when one is given."""
    _log(logger, logging.ERROR, message, exception, **extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.WARNING, message, **extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.INFO, message, **extra)
