"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...dependencies import get_optimizer
from ...services.routing.optimizer import RouteOptimizerGateway
from ...services.routing.osrm_client import check_health

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
def health_osrm(optimizer: RouteOptimizerGateway = Depends(get_optimizer)) -> dict:
    """Check whether route optimization is reachable. Route creation works either way."""
    if optimizer.client is None:
        return {"service": "osrm", "configured": False, "healthy": False}
    return {"service": "osrm", "configured": True, "healthy": check_health(optimizer.client)}
