"""
Health Check Endpoints

Liveness and readiness of the API and its database.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from netpulse.pipeline import MedallionPipeline
from netpulse.serving.api.dependencies import get_pipeline

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: MedallionPipeline = Depends(get_pipeline)) -> HealthResponse:
    """
    Health check endpoint.

    Checks:
    - Database connectivity
    - Transform queue backlog
    - Pending ready events
    """
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    db_health = await pipeline.database.check_health()
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"
    else:
        checks["outbox"] = {"pending": await pipeline.outbox.pending_count()}

    checks["transform_queue"] = {
        "depth": pipeline.queue.qsize(),
        "processing": pipeline.queue.is_processing,
    }

    return HealthResponse(
        status=overall_status,
        version=pipeline.settings.version,
        environment=pipeline.settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the application is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> Dict[str, str]:
    """Returns 200 if the database answers, 503 otherwise."""
    db_health = await pipeline.database.check_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
