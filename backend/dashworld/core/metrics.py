"""Prometheus metrics for the footage processing pipeline.

Exposes HTTP request metrics plus counters for transcode dispatches,
worker progress reports and materialized renditions.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Running under gunicorn with several workers
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "dashworld_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Transcoding Pipeline Metrics
# ============================================
TRANSCODE_DISPATCH_TOTAL = Counter(
    "transcode_dispatch_total",
    "Transcode jobs handed to the worker queue",
    ["backend", "result"],  # result: accepted, rejected
    registry=REGISTRY,
)

ENCODING_PROGRESS_REPORTS_TOTAL = Counter(
    "encoding_progress_reports_total",
    "Progress reports received from the transcode worker",
    ["quality", "status"],
    registry=REGISTRY,
)

RENDITIONS_MATERIALIZED_TOTAL = Counter(
    "renditions_materialized_total",
    "Rendition storage keys written by the transcode worker",
    ["quality"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
