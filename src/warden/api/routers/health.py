"""Health check and metrics endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

from warden import __version__
from warden.api.schemas.health import HealthResponse, HealthStatus
from warden.observability.metrics import get_metrics

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns basic liveness status. No authentication required.",
)
async def health_check(request: Request) -> HealthResponse:
    """Basic liveness check endpoint.

    Reports degraded when audit delivery is enabled but its worker is not running.
    """
    emitter = getattr(request.app.state, "audit_emitter", None)
    audit_running = emitter is not None and emitter.is_running
    status = HealthStatus.HEALTHY
    if emitter is not None and not audit_running:
        status = HealthStatus.DEGRADED

    return HealthResponse(
        status=status,
        version=__version__,
        timestamp=datetime.now(UTC),
        audit_running=audit_running,
        audit_dropped=emitter.dropped if emitter is not None else 0,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)
