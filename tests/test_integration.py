import pytest
from fastapi.testclient import TestClient

from delivery_routes.main import create_app


def _delivery(did: str, lat: float, lng: float) -> dict:
    return {
        "id": did,
        "address": f"{did} 5th Ave, New York",
        "customer": f"Customer {did}",
        "items": ["Dining table", "Chairs"],
        "time_slot": "13:00-15:00",
        "driver": "Alex",
        "status": "En Route",
        "coordinates": {"lat": lat, "lng": lng},
    }


@pytest.fixture
def api_client() -> TestClient:
    return TestClient(create_app())


def test_health_endpoints(api_client: TestClient):
    assert api_client.get("/api/health").json() == {"status": "ok"}

    provider = api_client.get("/api/health/provider").json()
    assert provider["service"] == "haversine"
    assert provider["healthy"] is True


def test_routing_endpoint_optimize(api_client: TestClient):
    body = {
        "deliveries": [
            _delivery("A", 40.73, -74.00),
            _delivery("B", 40.70, -74.02),
            _delivery("C", 40.75, -73.98),
        ]
    }

    response = api_client.post("/api/routes/optimize", json=body)

    assert response.status_code == 200
    payload = response.json()
    assert sorted(waypoint["id"] for waypoint in payload["waypoints"]) == ["A", "B", "C"]
    assert payload["waypoints"][0]["status"] == "En Route"
    assert payload["total_distance_meters"] > 0
    assert payload["metadata"]["timed_out"] is False
    assert payload["metadata"]["matrix"]["provider"] == "haversine"


def test_routing_endpoint_rejects_out_of_range_coordinates(api_client: TestClient):
    body = {"deliveries": [_delivery("A", 95.0, -74.00)]}

    response = api_client.post("/api/routes/optimize", json=body)

    assert response.status_code == 400
    assert "latitude" in response.json()["detail"]


def test_routing_endpoint_rejects_empty_request(api_client: TestClient):
    response = api_client.post("/api/routes/optimize", json={"deliveries": []})

    assert response.status_code == 400


def test_directions_endpoint(api_client: TestClient):
    body = {"waypoints": [{"lat": 40.73, "lng": -74.00}, {"lat": 40.75, "lng": -73.98}]}

    response = api_client.post("/api/routes/directions", json=body)

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["coordinates"]) == 4
    assert payload["source"] == "haversine"
