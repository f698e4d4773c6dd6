"""Single-vehicle tour construction (nearest neighbor) and improvement (2-opt).

The optimizer only orders stops and reports aggregate cost. It knows nothing
about the vendor behind the cost matrix: any :class:`TravelCostProvider` will
do, which is what makes deterministic fixtures possible in tests.

The result is a local optimum, not an exact TSP solution. Each 2-opt pass is
O(N^2), so latency grows with the number of stops; the pass cap and the
per-call deadline bound it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Sequence

from ...config import settings
from ...errors import InvalidInput, ProviderUnavailable
from ...models.domain import Coordinate, Stop
from .matrix import CostMatrix
from .models import Route
from .provider import HaversineProvider, TravelCostProvider, deadline_expired

# Reversals must save more than this many meters, so float noise cannot cycle.
IMPROVEMENT_EPSILON = 1e-7

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TwoOptResult:
    tour: list[int]
    passes: int
    stop_reason: str  # "converged", "pass_limit" or "deadline"

    @property
    def timed_out(self) -> bool:
        return self.stop_reason != "converged"


def validate_inputs(depot: Coordinate | None, stops: Sequence[Stop]) -> None:
    if depot is None:
        raise InvalidInput("Depot coordinates are required.")
    depot.validate("depot coordinates")
    seen: set[str] = set()
    for stop in stops:
        if stop.coordinate is None:
            raise InvalidInput(f"Invalid coordinates for delivery {stop.id}")
        stop.coordinate.validate(f"coordinates for delivery {stop.id}")
        if stop.id in seen:
            raise InvalidInput(f"Duplicate delivery id '{stop.id}'.")
        seen.add(stop.id)


def nearest_neighbor_tour(matrix: CostMatrix) -> list[int]:
    """Greedy tour from the depot; ties go to the lowest input index."""
    unvisited = list(range(1, matrix.size))
    tour: list[int] = []
    current = 0
    while unvisited:
        # min() keeps the first minimum and unvisited stays in ascending order.
        nearest = min(unvisited, key=lambda index: matrix.distance(current, index))
        tour.append(nearest)
        unvisited.remove(nearest)
        current = nearest
    return tour


def tour_totals(matrix: CostMatrix, tour: Sequence[int]) -> tuple[float, float]:
    """Distance and duration of depot -> tour -> depot."""
    path = [0, *tour, 0]
    distance = 0.0
    duration = 0.0
    for origin, destination in zip(path, path[1:]):
        distance += matrix.distance(origin, destination)
        duration += matrix.duration(origin, destination)
    return distance, duration


def tour_distance(matrix: CostMatrix, tour: Sequence[int]) -> float:
    return tour_totals(matrix, tour)[0]


def _prefix_costs(matrix: CostMatrix, path: Sequence[int]) -> tuple[list[float], list[float]]:
    """Running cost of walking ``path`` forwards and of walking each edge backwards."""
    forward = [0.0]
    backward = [0.0]
    for a, b in zip(path, path[1:]):
        forward.append(forward[-1] + matrix.distance(a, b))
        backward.append(backward[-1] + matrix.distance(b, a))
    return forward, backward


def two_opt(
    matrix: CostMatrix,
    tour: Sequence[int],
    max_passes: int | None = None,
    deadline: float | None = None,
) -> TwoOptResult:
    """Improve ``tour`` by segment reversals until no reversal shortens it.

    The depot closes the path on both sides, so the first and last edges take
    part in the search. Reversal gains include the reversed interior edges,
    which keeps the search exact for asymmetric road matrices.
    """
    max_passes = settings.two_opt_max_passes if max_passes is None else max_passes
    path = [0, *tour, 0]
    n = len(path)
    if n < 4:
        return TwoOptResult(tour=list(tour), passes=0, stop_reason="converged")

    passes = 0
    stop_reason = "pass_limit"
    while passes < max_passes:
        passes += 1
        improved = False
        forward, backward = _prefix_costs(matrix, path)
        for i in range(n - 3):
            if deadline_expired(deadline):
                stop_reason = "deadline"
                break
            for j in range(i + 2, n - 1):
                a, b, c, d = path[i], path[i + 1], path[j], path[j + 1]
                interior_forward = forward[j] - forward[i + 1]
                interior_backward = backward[j] - backward[i + 1]
                delta = (
                    matrix.distance(a, c)
                    + matrix.distance(b, d)
                    + interior_backward
                    - matrix.distance(a, b)
                    - matrix.distance(c, d)
                    - interior_forward
                )
                if delta < -IMPROVEMENT_EPSILON:
                    path[i + 1 : j + 1] = reversed(path[i + 1 : j + 1])
                    forward, backward = _prefix_costs(matrix, path)
                    improved = True
        if stop_reason == "deadline":
            break
        if not improved:
            stop_reason = "converged"
            break

    improved_tour = path[1:-1]
    if tour_distance(matrix, improved_tour) > tour_distance(matrix, tour):
        improved_tour = list(tour)
    return TwoOptResult(tour=improved_tour, passes=passes, stop_reason=stop_reason)


def optimize_route(
    depot: Coordinate,
    stops: Sequence[Stop],
    provider: TravelCostProvider | None = None,
    *,
    max_passes: int | None = None,
    timeout_seconds: float | None = None,
) -> Route:
    """Order ``stops`` for one vehicle leaving from and returning to ``depot``.

    Raises:
        InvalidInput: the depot or a stop coordinate is unusable, or stop ids repeat.
            Raised before the provider is contacted.
    """
    validate_inputs(depot, stops)
    if not stops:
        return Route(ordered_stops=[], total_distance_meters=0.0, total_duration_seconds=0.0)

    started = time.monotonic()
    timeout = timeout_seconds if timeout_seconds is not None else settings.optimize_timeout_seconds
    deadline = started + timeout
    provider = provider or HaversineProvider()

    points = [depot, *(stop.coordinate for stop in stops)]
    try:
        matrix = provider.get_matrix(points, deadline=deadline)
    except ProviderUnavailable as exc:
        logger.warning(f"{provider.name} matrix unavailable: {exc}. Using haversine estimates for every pair.")
        matrix = HaversineProvider(provider.average_speed_kmh).get_matrix(points)
        matrix.metadata["degraded_from"] = provider.name
        matrix.metadata["fallback_cells"] = len(points) * (len(points) - 1)
    if matrix.size != len(points):
        raise RuntimeError(f"{provider.name} returned a {matrix.size}x{matrix.size} matrix for {len(points)} points.")
    unfilled = matrix.fill_missing(points, provider.estimate)

    initial_tour = nearest_neighbor_tour(matrix)
    nearest_neighbor_distance = tour_distance(matrix, initial_tour)
    result = two_opt(matrix, initial_tour, max_passes=max_passes, deadline=deadline)
    if result.timed_out:
        logger.warning(
            f"2-opt stopped early ({result.stop_reason}) after {result.passes} pass(es); "
            f"returning best tour found for {len(stops)} stops"
        )

    total_distance, total_duration = tour_totals(matrix, result.tour)
    elapsed = time.monotonic() - started
    logger.info(
        f"Optimized {len(stops)} stops via {provider.name}: {total_distance:.0f} m, "
        f"{total_duration:.0f} s (nearest neighbor {nearest_neighbor_distance:.0f} m) in {elapsed:.2f}s"
    )

    matrix_metadata = dict(matrix.metadata)
    if unfilled:
        matrix_metadata["fallback_cells"] = matrix_metadata.get("fallback_cells", 0) + unfilled
    return Route(
        ordered_stops=[stops[index - 1] for index in result.tour],
        total_distance_meters=total_distance,
        total_duration_seconds=total_duration,
        metadata={
            "matrix": matrix_metadata,
            "nearest_neighbor_distance_meters": nearest_neighbor_distance,
            "two_opt_passes": result.passes,
            "stop_reason": result.stop_reason,
            "timed_out": result.timed_out,
        },
    )
