"""HTTP client for the OSRM trip service."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from ...config import settings
from ...exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.optimizer_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.optimizer_max_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.optimizer_backoff_seconds
        )
        self.transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 3.0)),
            transport=self.transport,
        )

    def trip(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Request a one-way trip that starts at the first coordinate.

        Args:
            coordinates: Sequence of (lat, lon) tuples; the first is the origin.

        Returns:
            The decoded OSRM response. ``waypoints`` follow input order and each
            carries the ``waypoint_index`` it was given in the trip.

        Raises:
            ExternalServiceError: On timeout, transport failure, non-2xx status or
                a response that is not a successful trip, once retries are spent.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for an OSRM trip.")

        # OSRM expects "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {
            "source": "first",
            "destination": "any",
            "roundtrip": "false",
            "overview": "false",
            "steps": "false",
        }
        url = f"{self.base_url}/trip/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict) or data.get("code") != "Ok":
                        message = data.get("message", data.get("code")) if isinstance(data, dict) else data
                        raise ValueError(f"OSRM trip request failed: {message}")
                    return data
                except (httpx.TimeoutException, httpx.NetworkError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM trip request failed after {self.max_retries} retries: {exc}")
                        raise ExternalServiceError(f"OSRM trip request failed: {exc}") from exc
                    wait_time = self.backoff_seconds * attempt
                    logger.debug(f"OSRM trip error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.HTTPError, ValueError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ExternalServiceError(f"OSRM trip response unusable: {exc}") from exc
                    time.sleep(self.backoff_seconds * attempt)
        finally:
            client.close()


def check_health(client: OSRMClient | None = None) -> bool:
    """Check OSRM reachability with a minimal two-point trip."""
    if client is None:
        if not settings.osrm_base_url:
            return False
        client = OSRMClient(max_retries=0)
    try:
        data = client.trip([(52.517037, 13.388860), (52.496891, 13.385983)])
        return isinstance(data.get("waypoints"), list)
    except ExternalServiceError:
        return False
