"""FastAPI dependencies."""

from fastapi import Request

from netpulse.pipeline import MedallionPipeline


def get_pipeline(request: Request) -> MedallionPipeline:
    """Pipeline owned by the application lifespan."""
    return request.app.state.pipeline
