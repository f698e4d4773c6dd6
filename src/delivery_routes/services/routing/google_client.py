"""HTTP client for the Google Distance Matrix and Directions APIs."""

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

# Quota and transient server statuses; anything else (REQUEST_DENIED, INVALID_REQUEST,
# MAX_ELEMENTS_EXCEEDED, ...) will fail the same way on every attempt.
RETRYABLE_STATUSES = frozenset({"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"})
# Directions accepts an origin, a destination and up to 23 intermediate waypoints.
DIRECTIONS_MAX_POINTS = 25

logger = logging.getLogger(__name__)


def _latlng(point: Coordinate) -> str:
    return f"{point.lat},{point.lng}"


def _windows(points: Sequence[Coordinate], size: int) -> list[Sequence[Coordinate]]:
    """Split an ordered path into consecutive windows that share their endpoints."""
    windows = []
    start = 0
    while start < len(points) - 1:
        windows.append(points[start : start + size])
        start += size - 1
    return windows


class GoogleDistanceMatrixClient(BatchedMatrixProvider):
    name = "google"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        max_elements_per_request: int | None = None,
        transport: httpx.BaseTransport | None = None,
        **kwargs,
    ) -> None:
        super().__init__(
            max_elements_per_request=max_elements_per_request
            if max_elements_per_request is not None
            else settings.matrix_max_elements_per_request,
            **kwargs,
        )
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is not configured.")
        self.base_url = (base_url or settings.google_maps_base_url).rstrip("/")
        self._transport = transport

    def _get_client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
            transport=self._transport,
        )

    def _get_json(self, endpoint: str, params: dict, timeout: float) -> dict:
        client = self._get_client(timeout)
        try:
            response = client.get(f"{self.base_url}/{endpoint}", params={**params, "key": self.api_key})
            if response.status_code in (401, 403):
                raise ProviderUnavailable(
                    f"Google {endpoint} rejected credentials (HTTP {response.status_code}).", retryable=False
                )
            response.raise_for_status()
            data = response.json()
        finally:
            client.close()

        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Google {endpoint} returned a malformed response body.")
        status = data.get("status")
        if status == "OK":
            return data
        message = data.get("error_message") or "no details"
        raise ProviderUnavailable(
            f"Google {endpoint} returned status {status}: {message}",
            retryable=status in RETRYABLE_STATUSES,
        )

    def _request_block(
        self, points: Sequence[Coordinate], batch: MatrixBatch, timeout: float
    ) -> tuple[BlockRows, BlockRows]:
        params = {
            "origins": "|".join(_latlng(points[i]) for i in batch.origins),
            "destinations": "|".join(_latlng(points[j]) for j in batch.destinations),
            "units": "metric",
            "mode": "driving",
        }
        data = self._get_json("distancematrix/json", params, timeout)

        distances: BlockRows = []
        durations: BlockRows = []
        for row in data.get("rows", []):
            distance_row: list[float | None] = []
            duration_row: list[float | None] = []
            for element in row.get("elements", []):
                if element.get("status") == "OK":
                    distance_row.append(element["distance"]["value"])
                    duration_row.append(element["duration"]["value"])
                else:
                    distance_row.append(None)
                    duration_row.append(None)
            distances.append(distance_row)
            durations.append(duration_row)
        return distances, durations

    def _directions_window(self, window: Sequence[Coordinate], timeout: float) -> dict:
        params = {
            "origin": _latlng(window[0]),
            "destination": _latlng(window[-1]),
            "mode": "driving",
        }
        if len(window) > 2:
            params["waypoints"] = "|".join(_latlng(point) for point in window[1:-1])
        return self._get_json("directions/json", params, timeout)

    def directions(self, points: Sequence[Coordinate], deadline: float | None = None) -> DirectionsResult:
        """Driving path through ``points`` in the given order (stops are not reordered)."""
        if len(points) < 2:
            raise ValueError("At least two coordinates are required for directions.")

        coordinates: list[tuple[float, float]] = []
        distance = 0.0
        duration = 0.0
        windows = _windows(points, DIRECTIONS_MAX_POINTS)
        if len(windows) > 1:
            logger.info(f"Splitting directions for {len(points)} points into {len(windows)} requests")
        for window in windows:
            data = self._with_retries(
                lambda timeout, window=window: self._directions_window(window, timeout),
                "google directions",
                deadline,
            )
            route = data["routes"][0]
            for leg in route.get("legs", []):
                distance += leg["distance"]["value"]
                duration += leg["duration"]["value"]
            path = decode_polyline(route.get("overview_polyline", {}).get("points", ""))
            if coordinates and path and coordinates[-1] == path[0]:
                path = path[1:]
            coordinates.extend(path)

        return DirectionsResult(
            coordinates=coordinates,
            distance_meters=distance,
            duration_seconds=duration,
            source=self.name,
        )

    def check_health(self) -> bool:
        """Issue a one-element matrix request to confirm the key and endpoint work."""
        probe = MatrixBatch(origins=range(0, 1), destinations=range(1, 2))
        points = [
            Coordinate(settings.depot_latitude, settings.depot_longitude),
            Coordinate(settings.depot_latitude + 0.01, settings.depot_longitude),
        ]
        try:
            self._request_block(points, probe, min(self.timeout, 5.0))
        except (ProviderUnavailable, httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Google health check failed: {exc}")
            return False
        return True
