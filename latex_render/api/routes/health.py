"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from latex_render.models.schemas import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/healthz", response_class=PlainTextResponse)
async def liveness() -> str:
    """Liveness probe; always ``ok``."""
    return "ok"


@router.get("/health", response_model=HealthStatus)
async def health_check(request: Request) -> HealthStatus:
    """Service version and render capacity."""
    gate = request.app.state.admission_gate
    return HealthStatus(
        status="healthy",
        version=request.app.state.settings.app_version,
        active_renders=gate.in_use,
        max_concurrent=gate.capacity,
    )
