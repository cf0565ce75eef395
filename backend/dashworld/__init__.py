"""DashWorld footage processing backend.

Accepts raw dashcam footage, dispatches quality-specific transcodes to an
out-of-process worker, and tracks per-rendition progress so viewers can
start watching as soon as the first rendition exists.

Modules:
    - core: Configuration, database, logging, metrics, tracing, Celery setup
    - modules.footage: Footage assets, rendition locations, ingestion and webhooks
    - modules.transcoding: Quality set, progress store, dispatcher, status aggregation
    - modules.playback: Read client, client poller and quality switching
"""

__version__ = "0.1.0"
