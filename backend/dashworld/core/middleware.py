"""HTTP middleware: request context, server spans, request metrics and access logs.

Requests under ``/footage/{asset_id}`` are bound to that asset for the
duration of the request, so their logs and spans can be joined with the
worker reports for the same upload.
"""

import logging
import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from dashworld.core.logging import (
    asset_id_var,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from dashworld.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)
from dashworld.core.tracing import add_span_attributes, create_span, record_exception

CORRELATION_ID_HEADER = "X-Correlation-ID"

_UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
_UUID_RE = re.compile(_UUID_PATTERN, flags=re.IGNORECASE)
_NUMERIC_ID_RE = re.compile(r"/\d+(?=/|$)")
_FOOTAGE_PATH_RE = re.compile(rf"/footage/({_UUID_PATTERN})(?=/|$)", flags=re.IGNORECASE)


def normalize_path(path: str) -> str:
    """Collapse UUID and numeric segments to ``{id}`` for metric labels."""
    path = _UUID_RE.sub("{id}", path)
    return _NUMERIC_ID_RE.sub("/{id}", path)


def asset_id_from_path(path: str) -> Optional[str]:
    match = _FOOTAGE_PATH_RE.search(path)
    return match.group(1).lower() if match else None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request count, latency and in-flight gauge per normalized route."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        labels = {"method": request.method, "endpoint": normalize_path(request.url.path)}
        in_progress = HTTP_REQUESTS_IN_PROGRESS.labels(**labels)
        in_progress.inc()
        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(time.perf_counter() - start)
            HTTP_REQUESTS_TOTAL.labels(status_code=str(status_code), **labels).inc()
            in_progress.dec()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Sets the correlation id (from ``X-Correlation-ID`` or a new UUID) and
    the footage asset id for the request, and echoes the correlation id back.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        asset_token = asset_id_var.set(asset_id_from_path(request.url.path))

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            asset_id_var.reset(asset_token)
            clear_correlation_id()


class TracingMiddleware(BaseHTTPMiddleware):
    """One server span per request, named after the normalized route."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        attributes = {
            "http.method": request.method,
            "http.url": str(request.url),
            "http.route": normalize_path(path),
            "correlation_id": get_correlation_id(),
        }
        asset_id = asset_id_from_path(path)
        if asset_id:
            attributes["asset_id"] = asset_id

        with create_span(
            f"{request.method} {attributes['http.route']}",
            attributes=attributes,
            kind=trace.SpanKind.SERVER,
        ):
            try:
                response = await call_next(request)
            except Exception as e:
                record_exception(e)
                raise
            add_span_attributes({"http.status_code": response.status_code})
            return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log: one line per finished or failed request."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("dashworld.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        fields = {"method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception("Request failed", extra={**fields, "duration_ms": _elapsed_ms(start)})
            raise

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            "Request handled",
            extra={**fields, "status_code": response.status_code, "duration_ms": _elapsed_ms(start)},
        )
        return response


__all__ = [
    "CORRELATION_ID_HEADER",
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "TracingMiddleware",
    "RequestLoggingMiddleware",
    "asset_id_from_path",
    "normalize_path",
]
