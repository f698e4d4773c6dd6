"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ...models.domain import Stop


@dataclass(slots=True)
class Route:
    """An ordered single-vehicle tour; the depot is implicit at both ends."""

    ordered_stops: List[Stop]
    total_distance_meters: float
    total_duration_seconds: float
    metadata: dict = field(default_factory=dict)
