"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTING_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Route Planner API"
    api_prefix: str = "/api"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    matrix_provider: Literal["google", "osrm", "haversine"] = Field(
        default="google",
        description="Travel-cost backend used to build distance/duration matrices.",
    )
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps Platform key for the Distance Matrix and Directions APIs.",
    )
    google_maps_base_url: str = "https://maps.googleapis.com/maps/api"
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    provider_max_retries: int = Field(default=3, ge=0)
    provider_backoff_seconds: float = Field(default=1.0, ge=0.0)
    provider_timeout_seconds: float = Field(default=30.0, gt=0.0)
    matrix_max_waypoints_per_request: int = Field(
        default=25,
        ge=1,
        description="Maximum origins (and destinations) the provider accepts in one matrix request.",
    )
    matrix_max_elements_per_request: Optional[int] = Field(
        default=100,
        ge=1,
        description="Maximum origins x destinations per matrix request, if the provider caps it.",
    )

    depot_latitude: float = Field(default=40.7128, ge=-90.0, le=90.0)
    depot_longitude: float = Field(default=-74.0060, ge=-180.0, le=180.0)
    average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Assumed urban speed used to estimate durations from straight-line distance.",
    )
    two_opt_max_passes: int = Field(default=100, ge=0)
    optimize_timeout_seconds: float = Field(default=60.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
