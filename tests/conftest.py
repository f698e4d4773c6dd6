import pytest

from delivery_routes.config import settings


@pytest.fixture(autouse=True)
def offline_provider(monkeypatch: pytest.MonkeyPatch):
    """Keep tests off the network unless a test wires its own provider."""
    monkeypatch.setattr(settings, "matrix_provider", "haversine")
    monkeypatch.setattr(settings, "google_maps_api_key", None)
    monkeypatch.setattr(settings, "osrm_base_url", None)
    monkeypatch.setattr(settings, "provider_backoff_seconds", 0.0)
    yield
