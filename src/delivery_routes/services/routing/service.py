"""Routing orchestration service."""

from __future__ import annotations

import logging
import time
from typing import Sequence

from shapely.geometry import LineString, mapping

from ...config import settings
from ...errors import InvalidInput, ProviderUnavailable
from ...models.domain import Coordinate, Stop
from ...schemas.routing import (
    CoordinateModel,
    DeliveryModel,
    DirectionsRequest,
    DirectionsResponse,
    RouteOptimizationRequest,
    RouteOptimizationResponse,
)
from .google_client import GoogleDistanceMatrixClient
from .models import Route
from .optimizer import optimize_route
from .osrm_client import OSRMClient
from .provider import HaversineProvider, TravelCostProvider, straight_line_directions

logger = logging.getLogger(__name__)


def resolve_depot(override: CoordinateModel | None = None) -> Coordinate:
    if override is not None:
        return Coordinate(lat=override.lat, lng=override.lng)
    return Coordinate(lat=settings.depot_latitude, lng=settings.depot_longitude)


def build_provider() -> TravelCostProvider:
    """Pick the configured travel-cost backend, falling back to haversine estimates."""
    try:
        if settings.matrix_provider == "google":
            return GoogleDistanceMatrixClient()
        if settings.matrix_provider == "osrm":
            return OSRMClient()
    except ValueError as exc:
        logger.warning(f"{settings.matrix_provider} provider unavailable: {exc}. Using haversine estimates.")
    return HaversineProvider()


def _to_stop(delivery: DeliveryModel) -> Stop:
    return Stop(
        id=delivery.id,
        address=delivery.address,
        coordinate=Coordinate(lat=delivery.coordinates.lat, lng=delivery.coordinates.lng),
        status=delivery.status,
        customer=delivery.customer,
        items=tuple(delivery.items),
        time_slot=delivery.time_slot,
        driver=delivery.driver,
    )


def _build_route_overlay(depot: Coordinate, stops: Sequence[Stop]) -> dict | None:
    """Straight-line GeoJSON path depot -> stops -> depot plus its bounding box."""
    if not stops:
        return None
    # GeoJSON uses (lng, lat) order
    path = [(depot.lng, depot.lat), *((stop.coordinate.lng, stop.coordinate.lat) for stop in stops), (depot.lng, depot.lat)]
    line = LineString(path)
    min_lng, min_lat, max_lng, max_lat = line.bounds
    return {
        "type": "Feature",
        "geometry": mapping(line),
        "properties": {"source": "straight_line", "stop_ids": [stop.id for stop in stops]},
        "bounds": {"south": min_lat, "west": min_lng, "north": max_lat, "east": max_lng},
    }


def _to_response(
    route: Route,
    depot: Coordinate,
    deliveries_by_id: dict[str, DeliveryModel],
    skipped: list[str],
    provider_name: str,
) -> RouteOptimizationResponse:
    metadata = dict(route.metadata)
    metadata["provider"] = provider_name
    overlay = _build_route_overlay(depot, route.ordered_stops)
    if overlay:
        metadata["map_overlay"] = overlay
    return RouteOptimizationResponse(
        total_distance_meters=route.total_distance_meters,
        total_duration_seconds=route.total_duration_seconds,
        total_distance_km=round(route.total_distance_meters / 1000.0, 1),
        total_duration_min=round(route.total_duration_seconds / 60.0),
        depot=CoordinateModel(lat=depot.lat, lng=depot.lng),
        waypoints=[deliveries_by_id[stop.id] for stop in route.ordered_stops],
        skipped_delivery_ids=skipped,
        metadata=metadata,
    )


def optimize_deliveries(payload: RouteOptimizationRequest) -> RouteOptimizationResponse:
    if not payload.deliveries:
        raise InvalidInput("No deliveries provided for route optimization.")

    depot = resolve_depot(payload.depot)
    routable = [delivery for delivery in payload.deliveries if delivery.coordinates is not None]
    skipped = [delivery.id for delivery in payload.deliveries if delivery.coordinates is None]
    if skipped:
        logger.warning(f"Skipping {len(skipped)} deliveries without coordinates: {skipped}")

    stops = [_to_stop(delivery) for delivery in routable]
    provider = build_provider()
    route = optimize_route(depot, stops, provider, timeout_seconds=payload.timeout_seconds)

    deliveries_by_id = {delivery.id: delivery for delivery in routable}
    return _to_response(route, depot, deliveries_by_id, skipped, provider.name)


def fetch_directions(payload: DirectionsRequest) -> DirectionsResponse:
    """Driving geometry along an already-optimized order, for map display."""
    if not payload.waypoints:
        raise InvalidInput("No waypoints provided for directions.")
    depot = resolve_depot(payload.depot).validate("depot coordinates")
    stops = [
        Coordinate(lat=point.lat, lng=point.lng).validate(f"waypoint {index}")
        for index, point in enumerate(payload.waypoints)
    ]
    points = [depot, *stops, depot] if payload.round_trip else stops
    if len(points) < 2:
        raise InvalidInput("At least two points are required for directions.")

    provider = build_provider()
    deadline = time.monotonic() + settings.optimize_timeout_seconds
    degraded = False
    try:
        result = provider.directions(points, deadline=deadline)
    except (ProviderUnavailable, KeyError, IndexError) as exc:
        logger.warning(f"{provider.name} directions failed: {exc}. Using straight-line path.")
        result = straight_line_directions(points)
        degraded = True

    return DirectionsResponse(
        coordinates=[[lat, lng] for lat, lng in result.coordinates],
        distance_meters=result.distance_meters,
        duration_seconds=result.duration_seconds,
        source=result.source,
        degraded=degraded,
    )
