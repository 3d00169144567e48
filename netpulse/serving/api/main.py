"""
FastAPI Application Factory

Creates the dashboard read API around one MedallionPipeline.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
import structlog

from netpulse.config.settings import Settings, get_settings
from netpulse.errors import MalformedInputError, NotFoundError, PipelineError, StorageError
from netpulse.pipeline import MedallionPipeline
from netpulse.serving.api.middleware import RequestLoggingMiddleware
from netpulse.serving.api.routes import analytics_router, health_router

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    MalformedInputError: 422,
    StorageError: 503,
}


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[MedallionPipeline] = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to the cached settings)
        pipeline: Pipeline to serve (defaults to one built from settings)
        run_scheduler: Run the aggregation scheduler for the app's lifetime

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()
    pipeline = pipeline or MedallionPipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting NetPulse Analytics API", environment=settings.app_env)
        await pipeline.start()
        if run_scheduler:
            pipeline.scheduler.start()
        app.state.pipeline = pipeline

        yield

        logger.info("Shutting down...")
        await pipeline.close()

    app = FastAPI(
        title="NetPulse Analytics API",
        description="Request telemetry analytics: latency candles, quality scores and daily rollups",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.error("Pipeline error", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.mount("/metrics", make_asgi_app())

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "NetPulse Analytics API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
