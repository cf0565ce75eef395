"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from dashworld.core.config import settings
from dashworld.core.logging import setup_logging
from dashworld.core.metrics import get_content_type, get_metrics, set_app_info
from dashworld.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
)
from dashworld.core.tracing import setup_tracing, shutdown_tracing
from dashworld.modules.footage.router import router as footage_router
from dashworld.modules.footage.router import webhook_router
from dashworld.modules.transcoding.dispatcher import build_worker_queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the worker queue client for the lifetime of the process."""
    app.state.worker_queue = build_worker_queue(settings)
    logger.info(f"Transcode worker queue ready ({app.state.worker_queue.backend_name})")
    try:
        yield
    finally:
        app.state.worker_queue.close()
        app.state.worker_queue = None
        shutdown_tracing()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Footage Transcoding & Playback API

Ingest raw footage, hand it to an external transcode worker, and track
per-quality progress until every rendition is playable.

* **Footage** - Ingestion, asset reads, aggregated processing status
* **Webhooks** - Progress and completion callbacks from the transcode worker
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "footage",
            "description": "Footage ingestion, renditions and processing status",
        },
        {
            "name": "webhooks",
            "description": "Transcode worker callbacks (X-Webhook-Secret)",
        },
    ],
)

setup_logging(
    level="INFO" if not settings.DEBUG else "DEBUG",
    json_format=True,
    include_stack_trace=True,
)

setup_tracing(settings)

set_app_info(version=settings.VERSION, environment=settings.ENVIRONMENT)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


# Include routers
app.include_router(footage_router, prefix=settings.API_V1_PREFIX)
app.include_router(webhook_router, prefix=settings.API_V1_PREFIX)
