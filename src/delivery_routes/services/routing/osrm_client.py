"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from ...config import settings
from ...errors import ProviderUnavailable
from ...models.domain import Coordinate
from ..geospatial import decode_polyline
from .matrix import MatrixBatch
from .provider import BatchedMatrixProvider, BlockRows, DirectionsResult

logger = logging.getLogger(__name__)


def _coordinate_path(points: Sequence[Coordinate]) -> str:
    # OSRM expects "lon,lat;lon,lat;..."
    return ";".join(f"{point.lng},{point.lat}" for point in points)


class OSRMClient(BatchedMatrixProvider):
    name = "osrm"

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.osrm_profile
        self._transport = transport

    def batch_limits(self) -> tuple[int, int, int | None]:
        # Each request carries the origin chunk followed by the destination chunk,
        # so the coordinate cap is shared between the two.
        per_side = max(1, self.max_waypoints_per_request // 2)
        return (per_side, per_side, self.max_elements_per_request)

    def _get_client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
            transport=self._transport,
        )

    def _get_json(self, url: str, params: dict, timeout: float) -> dict:
        client = self._get_client(timeout)
        try:
            response = client.get(url, params=params)
            if response.status_code == 414:
                raise ProviderUnavailable(
                    f"OSRM request URL too large. Try reducing max_waypoints_per_request "
                    f"(current: {self.max_waypoints_per_request})",
                    retryable=False,
                )
            if response.status_code == 400:
                # OSRM reports NoSegment / InvalidQuery with 400; retrying will not help.
                raise ProviderUnavailable(f"OSRM rejected request: {response.text[:200]}", retryable=False)
            response.raise_for_status()
            data = response.json()
        except (httpx.ConnectError, httpx.NetworkError) as exc:
            raise ProviderUnavailable(f"Failed to connect to OSRM service at {self.base_url}: {exc}") from exc
        finally:
            client.close()

        if not isinstance(data, dict):
            raise ProviderUnavailable("OSRM returned a malformed response body.")
        if data.get("code", "Ok") != "Ok":
            raise ProviderUnavailable(
                f"OSRM request failed: {data.get('message', data.get('code'))}", retryable=False
            )
        return data

    def _request_block(
        self, points: Sequence[Coordinate], batch: MatrixBatch, timeout: float
    ) -> tuple[BlockRows, BlockRows]:
        """Make a single OSRM table request for one origin chunk x destination chunk."""
        origins = [points[i] for i in batch.origins]
        destinations = [points[j] for j in batch.destinations]
        chunk_coords = origins + destinations

        params = {
            "annotations": "duration,distance",
            "sources": ";".join(str(i) for i in range(len(origins))),
            "destinations": ";".join(str(i) for i in range(len(origins), len(chunk_coords))),
        }
        url = f"{self.base_url}/table/v1/{self.profile}/{_coordinate_path(chunk_coords)}"
        data = self._get_json(url, params, timeout)
        if "durations" not in data or "distances" not in data:
            raise ProviderUnavailable("OSRM response missing durations/distances.")
        return data["distances"], data["durations"]

    def directions(self, points: Sequence[Coordinate], deadline: float | None = None) -> DirectionsResult:
        """Get the street-following route through ``points`` using the OSRM route endpoint."""
        if len(points) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{_coordinate_path(points)}"
        data = self._with_retries(
            lambda timeout: self._get_json(url, params, timeout),
            "osrm route",
            deadline,
        )
        route = data["routes"][0]
        return DirectionsResult(
            coordinates=decode_polyline(route.get("geometry", "")),
            distance_meters=float(route.get("distance", 0.0)),
            duration_seconds=float(route.get("duration", 0.0)),
            source=self.name,
        )

    def check_health(self) -> bool:
        """Check OSRM service health by making a simple table request.

        Public OSRM endpoints may not have a /health endpoint, so we test
        connectivity by making a minimal table request with two coordinates.
        """
        probe = MatrixBatch(origins=range(0, 1), destinations=range(1, 2))
        points = [
            Coordinate(settings.depot_latitude, settings.depot_longitude),
            Coordinate(settings.depot_latitude + 0.01, settings.depot_longitude),
        ]
        try:
            self._request_block(points, probe, min(self.timeout, 5.0))
        except (ProviderUnavailable, httpx.HTTPError, ValueError) as exc:
            logger.warning(f"OSRM health check failed: {exc}")
            return False
        return True
