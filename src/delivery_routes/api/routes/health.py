"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...services.routing.service import build_provider

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/provider", status_code=status.HTTP_200_OK)
def health_provider() -> dict:
    """Report the active travel-cost provider and whether it answers."""
    provider = build_provider()
    return {
        "configured": settings.matrix_provider,
        "service": provider.name,
        "degraded": provider.name != settings.matrix_provider,
        "healthy": provider.check_health(),
    }
