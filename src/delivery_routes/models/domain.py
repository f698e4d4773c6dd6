"""Domain models for depot coordinates and delivery stops."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import InvalidInput


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 point. Immutable once attached to a stop."""

    lat: float
    lng: float

    def validate(self, label: str = "coordinate") -> "Coordinate":
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise InvalidInput(f"Invalid {label}: ({self.lat}, {self.lng}) is not a finite point.")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidInput(f"Invalid {label}: latitude {self.lat} outside [-90, 90].")
        if not -180.0 <= self.lng <= 180.0:
            raise InvalidInput(f"Invalid {label}: longitude {self.lng} outside [-180, 180].")
        return self

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class StopStatus(str, Enum):
    PENDING = "Pending"
    EN_ROUTE = "En Route"
    COMPLETED = "Completed"


@dataclass(frozen=True, slots=True)
class Stop:
    """A scheduled delivery to visit.

    Only ``id`` and ``coordinate`` matter for ordering; the remaining fields are
    carried through to the itinerary untouched.
    """

    id: str
    address: str
    coordinate: Coordinate
    status: StopStatus = StopStatus.PENDING
    customer: Optional[str] = None
    items: tuple[str, ...] = field(default_factory=tuple)
    time_slot: Optional[str] = None
    driver: Optional[str] = None
