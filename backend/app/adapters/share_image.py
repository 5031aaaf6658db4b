"""Cosmetic group share-image generation."""

import logging
import time
from typing import Protocol

import httpx

from backend.app.config import Settings
from backend.app.models.results import ErrorKind, UpstreamError
from backend.app.models.trip import Trip
from backend.app.utils.logging import StructuredSyncLogger
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class ShareImageClient(Protocol):
    """Protocol for share image generators."""

    async def generate(self, trip: Trip, *, regenerate: bool = False) -> str | None:
        """Render a group image for the trip.

        Returns:
            Public image URL, or None when image generation is disabled
        """
        ...


class NullShareImageClient:
    """Image generation disabled."""

    async def generate(self, trip: Trip, *, regenerate: bool = False) -> str | None:
        return None


class HttpShareImageClient:
    """Share image generation over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
        metrics: PrometheusSyncMetrics | None = None,
        sync_logger: StructuredSyncLogger | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._client = client
        self._metrics = metrics or PrometheusSyncMetrics()
        self._log = sync_logger or StructuredSyncLogger()

    async def generate(self, trip: Trip, *, regenerate: bool = False) -> str | None:
        """Request an image and return its URL.

        Raises:
            UpstreamError: On HTTP failure or a response without an image URL
        """
        payload = {
            "tripId": str(trip.id),
            "destinationCity": trip.destination_city,
            "destinationCountry": trip.destination_country,
            "travelers": [{"name": t.name, "avatar_url": t.avatar_url} for t in trip.travelers],
            "travelerCount": trip.traveler_count,
            "regenerate": regenerate,
        }

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        start = time.perf_counter()
        try:
            response = await client.post(self._base_url, json=payload)
            if response.status_code == 429:
                raise UpstreamError("Image generation rate limited", ErrorKind.rate_limited)
            response.raise_for_status()
            data = response.json()
            image_url = data.get("imageUrl") if isinstance(data, dict) else None
            if not isinstance(image_url, str) or not image_url:
                raise UpstreamError("Image generation returned no image URL")
        except (httpx.HTTPError, ValueError) as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.inc_external_error("share_image", ErrorKind.upstream.value)
            self._log.log_external_call(
                "share_image", "error", latency_ms, trip_id=trip.id, error_reason=str(exc)
            )
            raise UpstreamError(f"Image generation failed: {exc}") from exc
        except UpstreamError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.inc_external_error("share_image", exc.kind.value)
            self._log.log_external_call(
                "share_image", "error", latency_ms, trip_id=trip.id, error_reason=str(exc)
            )
            raise
        finally:
            if close_client:
                await client.aclose()

        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_external_call("share_image", "success", latency_ms)
        self._log.log_external_call("share_image", "success", latency_ms, trip_id=trip.id)
        return image_url


def get_share_image_client(settings: Settings) -> ShareImageClient:
    """Build the share image client (disabled when no URL is configured)."""
    if not settings.share_image_url:
        return NullShareImageClient()
    return HttpShareImageClient(settings.share_image_url, timeout=settings.external_timeout_seconds)
