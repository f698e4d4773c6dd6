"""Cost matrix container and request batch planning."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Sequence

from ...models.domain import Coordinate
from ..geospatial import TravelCost, estimate_travel


@dataclass(frozen=True, slots=True)
class MatrixBatch:
    """One provider request: a block of origin rows by destination columns."""

    origins: range
    destinations: range

    @property
    def elements(self) -> int:
        return len(self.origins) * len(self.destinations)


def _index_chunks(count: int, size: int) -> list[range]:
    return [range(start, min(start + size, count)) for start in range(0, count, size)]


def plan_batches(
    count: int,
    max_origins: int,
    max_destinations: int,
    max_elements: int | None = None,
) -> list[MatrixBatch]:
    """Partition a count x count matrix into request-sized blocks.

    Blocks are stable index ranges in row-major order and tile the matrix
    exactly once, so the same input ordering always yields the same requests.
    """
    if count < 1:
        return []
    if max_origins < 1 or max_destinations < 1:
        raise ValueError("Batch limits must be at least 1.")

    destination_size = min(count, max_destinations)
    origin_size = min(count, max_origins)
    if max_elements is not None:
        if max_elements < 1:
            raise ValueError("Element limit must be at least 1.")
        destination_size = min(destination_size, max_elements)
        origin_size = max(1, min(origin_size, max_elements // destination_size))

    return [
        MatrixBatch(origins=origin_chunk, destinations=destination_chunk)
        for origin_chunk in _index_chunks(count, origin_size)
        for destination_chunk in _index_chunks(count, destination_size)
    ]


@dataclass(slots=True)
class CostMatrix:
    """Square distance (meters) and duration (seconds) tables.

    Index 0 is the depot and 1..N the stops in input order. ``None`` marks a
    cell no source has answered yet.
    """

    distances: list[list[float | None]]
    durations: list[list[float | None]]
    metadata: dict = field(default_factory=dict)

    @classmethod
    def empty(cls, size: int) -> "CostMatrix":
        distances: list[list[float | None]] = [[None] * size for _ in range(size)]
        durations: list[list[float | None]] = [[None] * size for _ in range(size)]
        for i in range(size):
            distances[i][i] = 0.0
            durations[i][i] = 0.0
        return cls(distances=distances, durations=durations)

    @classmethod
    def from_function(
        cls,
        points: Sequence[Coordinate],
        cost: Callable[[Coordinate, Coordinate], TravelCost],
    ) -> "CostMatrix":
        matrix = cls.empty(len(points))
        matrix.fill_missing(points, cost)
        return matrix

    @property
    def size(self) -> int:
        return len(self.distances)

    def distance(self, origin: int, destination: int) -> float:
        value = self.distances[origin][destination]
        if value is None:
            raise KeyError(f"Missing distance for cell ({origin}, {destination}).")
        return value

    def duration(self, origin: int, destination: int) -> float:
        value = self.durations[origin][destination]
        if value is None:
            raise KeyError(f"Missing duration for cell ({origin}, {destination}).")
        return value

    def set_cell(self, origin: int, destination: int, distance: float | None, duration: float | None) -> None:
        if origin == destination:
            return
        self.distances[origin][destination] = _clean(distance)
        self.durations[origin][destination] = _clean(duration)

    def missing_cells(self) -> list[tuple[int, int]]:
        return [
            (i, j)
            for i in range(self.size)
            for j in range(self.size)
            if self.distances[i][j] is None or self.durations[i][j] is None
        ]

    def fill_missing(
        self,
        points: Sequence[Coordinate],
        cost: Callable[[Coordinate, Coordinate], TravelCost] = estimate_travel,
    ) -> int:
        """Fill every missing cell from ``cost`` and return how many were filled."""
        if len(points) != self.size:
            raise ValueError(f"Expected {self.size} points, got {len(points)}.")
        filled = 0
        for i, j in self.missing_cells():
            estimate = cost(points[i], points[j])
            if self.distances[i][j] is None:
                self.distances[i][j] = estimate.distance_meters
            if self.durations[i][j] is None:
                self.durations[i][j] = estimate.duration_seconds
            filled += 1
        return filled

    def expand(self, mapping: Sequence[int]) -> "CostMatrix":
        """Build a matrix over ``mapping`` where entry k refers to row ``mapping[k]`` of this one."""
        size = len(mapping)
        expanded = CostMatrix.empty(size)
        for i in range(size):
            for j in range(size):
                if i == j:
                    continue
                expanded.distances[i][j] = self.distances[mapping[i]][mapping[j]]
                expanded.durations[i][j] = self.durations[mapping[i]][mapping[j]]
        expanded.metadata = dict(self.metadata)
        return expanded


def _clean(value: float | None) -> float | None:
    # Providers occasionally return negative or non-numeric sentinels for unroutable pairs.
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number
