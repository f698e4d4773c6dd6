import httpx
import pytest

from delivery_routes.models.domain import Coordinate, Stop
from delivery_routes.services.geospatial import estimate_travel
from delivery_routes.services.routing.google_client import GoogleDistanceMatrixClient
from delivery_routes.services.routing.optimizer import optimize_route
from delivery_routes.services.routing.osrm_client import OSRMClient

POINTS = [
    Coordinate(40.7128, -74.0060),
    Coordinate(40.73, -74.00),
    Coordinate(40.70, -74.02),
]
ENCODED_PATH = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def _element(distance: int, duration: int) -> dict:
    return {
        "status": "OK",
        "distance": {"value": distance, "text": ""},
        "duration": {"value": duration, "text": ""},
    }


def _google_matrix_handler(requests: list, statuses: list | None = None):
    statuses = list(statuses or [])

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if statuses:
            return httpx.Response(200, json={"status": statuses.pop(0), "rows": []})
        origins = request.url.params["origins"].split("|")
        destinations = request.url.params["destinations"].split("|")
        rows = []
        for i, _ in enumerate(origins):
            elements = [_element(1000 + 10 * i + j, 100 + i + j) for j, _ in enumerate(destinations)]
            rows.append({"elements": elements})
        rows[0]["elements"][-1] = {"status": "ZERO_RESULTS"}
        return httpx.Response(200, json={"status": "OK", "rows": rows})

    return handler


def _google_client(handler, **kwargs) -> GoogleDistanceMatrixClient:
    return GoogleDistanceMatrixClient(
        api_key="test-key",
        base_url="https://maps.example.test/maps/api",
        transport=httpx.MockTransport(handler),
        backoff_seconds=0.0,
        **kwargs,
    )


def test_google_matrix_parses_elements_and_fills_gaps():
    requests = []
    client = _google_client(_google_matrix_handler(requests))

    matrix = client.get_matrix(POINTS)

    assert len(requests) == 1
    params = requests[0].url.params
    assert params["key"] == "test-key"
    assert params["units"] == "metric"
    assert requests[0].url.path.endswith("/distancematrix/json")
    assert matrix.distance(1, 2) == 1012.0
    assert matrix.duration(2, 1) == 103.0
    # origin 0 -> destination 2 came back ZERO_RESULTS
    assert matrix.distance(0, 2) == pytest.approx(estimate_travel(POINTS[0], POINTS[2]).distance_meters)
    assert matrix.metadata["fallback_cells"] == 1


def test_google_matrix_splits_requests_by_element_cap():
    requests = []
    client = _google_client(_google_matrix_handler(requests), max_elements_per_request=4)

    client.get_matrix(POINTS)

    for request in requests:
        origins = request.url.params["origins"].split("|")
        destinations = request.url.params["destinations"].split("|")
        assert len(origins) * len(destinations) <= 4


def test_google_quota_errors_are_retried():
    requests = []
    client = _google_client(_google_matrix_handler(requests, statuses=["OVER_QUERY_LIMIT"]), max_retries=2)

    matrix = client.get_matrix(POINTS)

    assert len(requests) == 2
    assert matrix.metadata["failed_batches"] == 0
    assert matrix.distance(1, 0) == 1010.0


def test_google_denied_key_falls_back_without_retry():
    requests = []
    client = _google_client(_google_matrix_handler(requests, statuses=["REQUEST_DENIED"] * 5), max_retries=3)

    matrix = client.get_matrix(POINTS)

    assert len(requests) == 1
    assert matrix.metadata["failed_batches"] == 1
    assert matrix.missing_cells() == []


def test_google_non_object_body_falls_back_to_estimates():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[])

    client = _google_client(handler, max_retries=1)
    stops = [Stop(id=f"S{index}", address="", coordinate=point) for index, point in enumerate(POINTS[1:])]

    route = optimize_route(POINTS[0], stops, client)

    assert len(requests) == 2
    assert sorted(stop.id for stop in route.ordered_stops) == ["S0", "S1"]
    assert route.metadata["matrix"]["failed_batches"] == 1
    assert route.metadata["matrix"]["fallback_cells"] == 6


def test_osrm_non_object_body_is_a_failed_batch():
    client = OSRMClient(
        base_url="http://osrm.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json="Ok")),
        max_retries=0,
        backoff_seconds=0.0,
    )

    matrix = client.get_matrix(POINTS)

    assert matrix.metadata["failed_batches"] == 1
    assert matrix.missing_cells() == []


def test_google_requires_api_key():
    with pytest.raises(ValueError):
        GoogleDistanceMatrixClient()


def test_google_directions_follow_given_order():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "routes": [
                    {
                        "overview_polyline": {"points": ENCODED_PATH},
                        "legs": [
                            {"distance": {"value": 1500}, "duration": {"value": 240}},
                            {"distance": {"value": 500}, "duration": {"value": 60}},
                        ],
                    }
                ],
            },
        )

    client = _google_client(handler)
    result = client.directions(POINTS)

    params = requests[0].url.params
    assert params["origin"] == "40.7128,-74.006"
    assert params["destination"] == "40.7,-74.02"
    assert params["waypoints"] == "40.73,-74.0"
    assert result.distance_meters == 2000
    assert result.duration_seconds == 300
    assert len(result.coordinates) == 3
    assert result.source == "google"


def test_google_directions_split_long_itineraries():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "routes": [{"overview_polyline": {"points": ""}, "legs": [{"distance": {"value": 10}, "duration": {"value": 1}}]}],
            },
        )

    points = [Coordinate(40.70 + i * 0.001, -74.0) for i in range(30)]
    result = _google_client(handler).directions(points)

    assert len(requests) == 2
    second_origin = requests[1].url.params["origin"]
    assert second_origin == f"{points[24].lat},{points[24].lng}"
    assert result.distance_meters == 20


def _osrm_handler(requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "/route/v1/" in request.url.path:
            return httpx.Response(
                200,
                json={"code": "Ok", "routes": [{"geometry": ENCODED_PATH, "distance": 1234.5, "duration": 300.0}]},
            )
        sources = request.url.params["sources"].split(";")
        destinations = request.url.params["destinations"].split(";")
        distances = [[2000.0 + 10 * i + j for j, _ in enumerate(destinations)] for i, _ in enumerate(sources)]
        durations = [[200.0 + i + j for j, _ in enumerate(destinations)] for i, _ in enumerate(sources)]
        distances[1][0] = None
        durations[1][0] = None
        return httpx.Response(200, json={"code": "Ok", "distances": distances, "durations": durations})

    return handler


def test_osrm_table_maps_sources_and_destinations():
    requests = []
    client = OSRMClient(
        base_url="http://osrm.test",
        transport=httpx.MockTransport(_osrm_handler(requests)),
        backoff_seconds=0.0,
    )

    matrix = client.get_matrix(POINTS)

    assert len(requests) == 1
    request = requests[0]
    assert "/table/v1/driving/-74.006,40.7128;" in request.url.path
    assert request.url.params["sources"] == "0;1;2"
    assert request.url.params["destinations"] == "3;4;5"
    assert matrix.distance(0, 2) == 2002.0
    assert matrix.distance(1, 0) == pytest.approx(estimate_travel(POINTS[1], POINTS[0]).distance_meters)
    assert matrix.metadata["fallback_cells"] == 1


def test_osrm_connection_errors_degrade_to_estimates():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = OSRMClient(
        base_url="http://osrm.test",
        transport=httpx.MockTransport(handler),
        max_retries=2,
        backoff_seconds=0.0,
    )

    matrix = client.get_matrix(POINTS)

    assert len(attempts) == 3
    assert matrix.missing_cells() == []
    assert matrix.metadata["failed_batches"] == 1


def test_osrm_route_geometry():
    requests = []
    client = OSRMClient(base_url="http://osrm.test", transport=httpx.MockTransport(_osrm_handler(requests)))

    result = client.directions(POINTS)

    assert result.distance_meters == 1234.5
    assert result.duration_seconds == 300.0
    assert result.coordinates[0] == pytest.approx((38.5, -120.2))
    assert requests[0].url.params["geometries"] == "polyline"
