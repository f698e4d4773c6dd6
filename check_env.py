#!/usr/bin/env python3
"""Helper script to check and create .env file for the travel-cost provider."""

from pathlib import Path
import sys

TEMPLATE = """# Travel-cost provider: google, osrm or haversine (no external calls)
ROUTING_MATRIX_PROVIDER=google
ROUTING_GOOGLE_MAPS_API_KEY=your-google-maps-key-here
# ROUTING_OSRM_BASE_URL=http://localhost:5000

# Requests per matrix call are capped by the provider's documented limits
ROUTING_MATRIX_MAX_WAYPOINTS_PER_REQUEST=25
ROUTING_MATRIX_MAX_ELEMENTS_PER_REQUEST=100

# Depot (vehicle start and end point)
ROUTING_DEPOT_LATITUDE=40.7128
ROUTING_DEPOT_LONGITUDE=-74.0060

# ROUTING_FRONTEND_ALLOWED_ORIGINS - JSON array format: ["http://localhost:3000"]
"""


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Route planner environment checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        with open(env_file, "w", encoding="utf-8") as f:
            f.write(TEMPLATE)
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Please edit .env and add your provider credentials!")
        return 0

    sys.path.insert(0, str(project_root / "src"))
    try:
        from delivery_routes.config import settings
        from delivery_routes.services.routing.service import build_provider
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return 1

    print(f"Configured provider: {settings.matrix_provider}")
    if settings.google_maps_api_key:
        print(f"✅ Google Maps key: {settings.google_maps_api_key[:8]}...")
    else:
        print("❌ ROUTING_GOOGLE_MAPS_API_KEY is not set")
    print(f"OSRM base URL: {settings.osrm_base_url or '(not set)'}")
    print(f"Depot: ({settings.depot_latitude}, {settings.depot_longitude})")
    print()

    provider = build_provider()
    if provider.name != settings.matrix_provider:
        print(f"⚠️  Falling back to '{provider.name}': distances will be straight-line estimates.")
        return 1
    healthy = provider.check_health()
    print(f"{'✅' if healthy else '❌'} {provider.name} reachable: {healthy}")
    return 0 if healthy else 1


if __name__ == "__main__":
    sys.exit(main())
