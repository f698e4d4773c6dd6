"""Travel-cost providers: the interface the optimizer depends on and shared batching logic."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

import httpx

from ...config import settings
from ...errors import ProviderUnavailable
from ...models.domain import Coordinate
from ..geospatial import TravelCost, estimate_travel
from .matrix import CostMatrix, MatrixBatch, plan_batches

logger = logging.getLogger(__name__)

T = TypeVar("T")

BlockRows = list[list[float | None]]


@dataclass(slots=True)
class DirectionsResult:
    coordinates: list[tuple[float, float]]
    distance_meters: float
    duration_seconds: float
    source: str


def straight_line_directions(
    points: Sequence[Coordinate],
    average_speed_kmh: float | None = None,
    source: str = "straight_line",
) -> DirectionsResult:
    distance = 0.0
    duration = 0.0
    for a, b in zip(points, points[1:]):
        leg = estimate_travel(a, b, average_speed_kmh)
        distance += leg.distance_meters
        duration += leg.duration_seconds
    return DirectionsResult(
        coordinates=[point.as_tuple() for point in points],
        distance_meters=distance,
        duration_seconds=duration,
        source=source,
    )


def deadline_expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


class TravelCostProvider(ABC):
    """Contract for anything that can price travel between coordinates."""

    name = "provider"
    average_speed_kmh: float | None = None

    def estimate(self, a: Coordinate, b: Coordinate) -> TravelCost:
        """Fallback cost for a pair the provider could not price."""
        return estimate_travel(a, b, self.average_speed_kmh)

    @abstractmethod
    def get_matrix(self, points: Sequence[Coordinate], deadline: float | None = None) -> CostMatrix:
        """Return a complete cost matrix over ``points``; ``points[0]`` is the depot."""
        raise NotImplementedError

    def directions(self, points: Sequence[Coordinate], deadline: float | None = None) -> DirectionsResult:
        """Driving geometry through ``points`` in the given order."""
        return straight_line_directions(points, self.average_speed_kmh, source=self.name)

    def check_health(self) -> bool:
        return True


class HaversineProvider(TravelCostProvider):
    """Prices every pair from great-circle distance. No I/O."""

    name = "haversine"

    def __init__(self, average_speed_kmh: float | None = None) -> None:
        self.average_speed_kmh = average_speed_kmh if average_speed_kmh is not None else settings.average_speed_kmh

    def get_matrix(self, points: Sequence[Coordinate], deadline: float | None = None) -> CostMatrix:
        matrix = CostMatrix.from_function(points, self.estimate)
        matrix.metadata = {
            "provider": self.name,
            "batches": 0,
            "failed_batches": 0,
            "skipped_batches": 0,
            "fallback_cells": 0,
        }
        return matrix


def _deduplicate(points: Sequence[Coordinate]) -> tuple[list[Coordinate], list[int]]:
    unique: list[Coordinate] = []
    positions: dict[tuple[float, float], int] = {}
    mapping: list[int] = []
    for point in points:
        key = point.as_tuple()
        if key not in positions:
            positions[key] = len(unique)
            unique.append(point)
        mapping.append(positions[key])
    return unique, mapping


class BatchedMatrixProvider(TravelCostProvider):
    """Base for external matrix APIs with per-request size caps.

    Requests are issued one at a time in index order. A batch that keeps failing
    is left to the fallback estimator instead of failing the whole matrix.
    """

    name = "batched"

    def __init__(
        self,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_waypoints_per_request: int | None = None,
        max_elements_per_request: int | None = None,
        average_speed_kmh: float | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.provider_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds
        self.max_waypoints_per_request = (
            max_waypoints_per_request
            if max_waypoints_per_request is not None
            else settings.matrix_max_waypoints_per_request
        )
        self.max_elements_per_request = max_elements_per_request
        self.average_speed_kmh = average_speed_kmh if average_speed_kmh is not None else settings.average_speed_kmh

    def batch_limits(self) -> tuple[int, int, int | None]:
        """(max origins, max destinations, max origins x destinations) per request."""
        return (self.max_waypoints_per_request, self.max_waypoints_per_request, self.max_elements_per_request)

    @abstractmethod
    def _request_block(
        self, points: Sequence[Coordinate], batch: MatrixBatch, timeout: float
    ) -> tuple[BlockRows, BlockRows]:
        """Fetch (distances, durations) for ``batch.origins`` x ``batch.destinations``.

        Rows are indexed locally (0 is ``batch.origins[0]``); ``None`` marks an
        unroutable pair.
        """
        raise NotImplementedError

    def _attempt_timeout(self, deadline: float | None) -> float:
        if deadline is None:
            return self.timeout
        return max(0.001, min(self.timeout, deadline - time.monotonic()))

    def _with_retries(self, operation: Callable[[float], T], description: str, deadline: float | None) -> T:
        attempt = 0
        while True:
            try:
                return operation(self._attempt_timeout(deadline))
            except ProviderUnavailable as exc:
                error = exc
            except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
                # ValueError also covers undecodable JSON bodies.
                error = ProviderUnavailable(f"{description} failed: {exc}")
                error.__cause__ = exc

            if not error.retryable:
                raise error
            attempt += 1
            if attempt > self.max_retries:
                raise ProviderUnavailable(
                    f"{description} failed after {attempt} attempt(s): {error}", retryable=False
                ) from error
            wait_time = self.backoff_seconds * (2 ** (attempt - 1))
            if deadline is not None and time.monotonic() + wait_time >= deadline:
                raise ProviderUnavailable(
                    f"{description} abandoned: call deadline reached after {attempt} attempt(s): {error}",
                    retryable=False,
                ) from error
            logger.debug(
                f"{description} failed, retrying in {wait_time:.1f}s "
                f"(attempt {attempt}/{self.max_retries}): {error}"
            )
            time.sleep(wait_time)

    def _fetch_block(
        self, points: Sequence[Coordinate], batch: MatrixBatch, timeout: float
    ) -> tuple[BlockRows, BlockRows]:
        distances, durations = self._request_block(points, batch, timeout)
        rows, cols = len(batch.origins), len(batch.destinations)
        for block in (distances, durations):
            if len(block) != rows or any(len(row) != cols for row in block):
                raise ProviderUnavailable(
                    f"{self.name} returned a block of the wrong shape (expected {rows}x{cols})."
                )
        return distances, durations

    def get_matrix(self, points: Sequence[Coordinate], deadline: float | None = None) -> CostMatrix:
        if not points:
            raise ValueError("At least one point is required to build a cost matrix.")

        unique, mapping = _deduplicate(points)
        matrix = CostMatrix.empty(len(unique))
        batches = plan_batches(len(unique), *self.batch_limits()) if len(unique) > 1 else []
        if batches:
            logger.info(
                f"Requesting {self.name} matrix for {len(unique)} distinct points "
                f"({len(points)} total) in {len(batches)} batch(es)"
            )

        start_time = time.monotonic()
        failed_batches = 0
        skipped_batches = 0
        for batch in batches:
            description = (
                f"{self.name} batch [{batch.origins.start}:{batch.origins.stop}] -> "
                f"[{batch.destinations.start}:{batch.destinations.stop}]"
            )
            if deadline_expired(deadline):
                skipped_batches += 1
                continue
            try:
                distances, durations = self._with_retries(
                    lambda timeout, batch=batch: self._fetch_block(unique, batch, timeout),
                    description,
                    deadline,
                )
            except ProviderUnavailable as exc:
                failed_batches += 1
                logger.warning(f"{exc}. Using estimated costs for this batch.")
                continue
            for local_i, origin in enumerate(batch.origins):
                for local_j, destination in enumerate(batch.destinations):
                    matrix.set_cell(origin, destination, distances[local_i][local_j], durations[local_i][local_j])

        if skipped_batches:
            logger.warning(
                f"{self.name}: deadline reached, {skipped_batches}/{len(batches)} batch(es) not requested."
            )
        fallback_cells = matrix.fill_missing(unique, self.estimate)
        if fallback_cells:
            logger.warning(
                f"{self.name}: filled {fallback_cells} matrix cell(s) with haversine estimates "
                f"({failed_batches} failed batch(es))."
            )
        elif batches:
            logger.info(
                f"Completed {self.name} matrix: {len(batches)} batch(es) in "
                f"{time.monotonic() - start_time:.2f}s"
            )

        matrix.metadata = {
            "provider": self.name,
            "batches": len(batches),
            "failed_batches": failed_batches,
            "skipped_batches": skipped_batches,
            "fallback_cells": fallback_cells,
        }
        if len(unique) == len(points):
            return matrix
        return matrix.expand(mapping)
