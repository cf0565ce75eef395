"""HTTP client for the footage read endpoints.

Used by the client poller. Any transport failure, non-2xx response or
non-JSON body is raised as PollTransportError so the caller can stop.
"""

import uuid
from typing import Any, Optional

import httpx


class PlaybackError(Exception):
    """Base exception for playback-side errors."""
    pass


class PollTransportError(PlaybackError):
    """Exception raised when a status fetch fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.url = url
        super().__init__(self.message)


class FootageApiClient:
    """Reads footage and encoding progress from the API.

    The httpx client is injected or owned; an owned client is closed by
    ``aclose`` (or on leaving ``async with``), an injected one is left open.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def get_asset(self, asset_id: uuid.UUID) -> dict[str, Any]:
        """Fetch a footage asset, including its ``renditions`` map."""
        return await self._get_json(f"{self.base_url}/footage/{asset_id}")

    async def get_encoding_progress(self, asset_id: uuid.UUID) -> dict[str, Any]:
        """Fetch quality -> {progress, status, updated_at} for an asset."""
        return await self._get_json(f"{self.base_url}/footage/{asset_id}/encoding-progress")

    async def _get_json(self, url: str) -> dict[str, Any]:
        try:
            response = await self.http_client.get(url)
        except httpx.HTTPError as e:
            raise PollTransportError(f"Request failed: {e}", url=url) from e

        if not response.is_success:
            raise PollTransportError(
                f"Unexpected status {response.status_code}",
                status_code=response.status_code,
                url=url,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PollTransportError(
                "Response is not JSON", status_code=response.status_code, url=url
            ) from e

        if not isinstance(data, dict):
            raise PollTransportError(
                "Response is not a JSON object", status_code=response.status_code, url=url
            )
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "FootageApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
