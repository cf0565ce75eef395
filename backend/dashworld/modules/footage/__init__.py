"""Footage module: asset ingestion, rendition locations and worker callbacks."""

from dashworld.modules.footage.models import ProcessingStatus, Rendition, VideoAsset
from dashworld.modules.footage.repository import RenditionRepository, VideoAssetRepository
from dashworld.modules.footage.service import (
    FootageNotFoundError,
    FootageService,
    FootageServiceError,
    build_media_url,
)

__all__ = [
    # Models
    "ProcessingStatus",
    "Rendition",
    "VideoAsset",
    # Repositories
    "RenditionRepository",
    "VideoAssetRepository",
    # Service
    "FootageNotFoundError",
    "FootageService",
    "FootageServiceError",
    "build_media_url",
]
