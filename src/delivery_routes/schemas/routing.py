"""Routing request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import StopStatus


class CoordinateModel(BaseModel):
    # Range checks happen in the domain layer so they surface as InvalidInput (HTTP 400).
    lat: float
    lng: float


class DeliveryModel(BaseModel):
    """A scheduled delivery as listed by the deliveries collaborator."""

    model_config = ConfigDict(extra="allow")

    id: str
    address: str = ""
    customer: Optional[str] = None
    items: List[str] = Field(default_factory=list)
    time_slot: Optional[str] = None
    driver: Optional[str] = None
    status: StopStatus = StopStatus.PENDING
    coordinates: Optional[CoordinateModel] = Field(
        default=None,
        description="Resolved location; deliveries without one are skipped.",
    )


class RouteOptimizationRequest(BaseModel):
    deliveries: List[DeliveryModel]
    depot: Optional[CoordinateModel] = Field(
        default=None,
        description="Overrides the configured depot for this request.",
    )
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class RouteOptimizationResponse(BaseModel):
    total_distance_meters: float
    total_duration_seconds: float
    total_distance_km: float
    total_duration_min: int
    depot: CoordinateModel
    waypoints: List[DeliveryModel]
    skipped_delivery_ids: List[str]
    metadata: dict


class DirectionsRequest(BaseModel):
    waypoints: List[CoordinateModel] = Field(..., description="Stops in visiting order.")
    depot: Optional[CoordinateModel] = None
    round_trip: bool = Field(
        default=True,
        description="Start and end the path at the depot.",
    )


class DirectionsResponse(BaseModel):
    coordinates: List[List[float]]
    distance_meters: float
    duration_seconds: float
    source: str
    degraded: bool = False
