"""Health check routes for the Uniclass Match Gateway.

The gateway keeps no connections open between requests, so readiness is
a configuration check: both collaborators must have credentials.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from uniclass_gateway.api.dependencies import get_config
from uniclass_gateway.api.models import (
    ComponentHealth,
    HealthAlive,
    HealthStatus,
    HealthStatusResponse,
)
from uniclass_gateway.config import Settings

router = APIRouter(prefix="/health", tags=["Health"])


class ReadinessResponse(BaseModel):
    """Readiness probe response."""
    ready: bool
    timestamp: str
    checks: dict[str, bool]


def _component_checks(settings: Settings) -> dict[str, ComponentHealth]:
    components = {"api": ComponentHealth(status=HealthStatus.HEALTHY)}

    if settings.embedding.api_key:
        components["embedding"] = ComponentHealth(status=HealthStatus.HEALTHY)
    else:
        components["embedding"] = ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message="GEMINI_API_KEY is not configured",
        )

    if settings.store.url and settings.store.anon_key:
        components["store"] = ComponentHealth(status=HealthStatus.HEALTHY)
    else:
        components["store"] = ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            message="SUPABASE_URL or SUPABASE_ANON_KEY is not configured",
        )

    return components


@router.get("", response_model=HealthStatusResponse)
async def health_check(settings: Settings = Depends(get_config)) -> HealthStatusResponse:
    """Overall health with per-collaborator configuration status."""
    components = _component_checks(settings)

    overall_status = HealthStatus.HEALTHY
    if any(c.status == HealthStatus.UNHEALTHY for c in components.values()):
        overall_status = HealthStatus.DEGRADED

    return HealthStatusResponse(
        status=overall_status,
        version=settings.app_version,
        components=components,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_probe(settings: Settings = Depends(get_config)) -> ReadinessResponse:
    """Readiness probe.

    Returns:
        Readiness status

    Raises:
        HTTPException: 503 if a collaborator is not configured
    """
    checks = {
        name: component.status == HealthStatus.HEALTHY
        for name, component in _component_checks(settings).items()
    }

    if not all(checks.values()):
        missing = sorted(name for name, ok in checks.items() if not ok)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Not configured: {', '.join(missing)}",
        )

    return ReadinessResponse(
        ready=True,
        timestamp=datetime.utcnow().isoformat(),
        checks=checks,
    )


@router.get("/live", response_model=HealthAlive)
async def liveness_probe() -> HealthAlive:
    """Liveness probe."""
    return HealthAlive()
