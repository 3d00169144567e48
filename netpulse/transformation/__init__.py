"""
Data Transformation Module
"""
from .enrichers import Enrichment, RequestEnricher
from .enrichment_engine import EnrichmentEngine, EnrichmentOutcome
from .transform_queue import TransformQueue

__all__ = [
    "Enrichment",
    "RequestEnricher",
    "EnrichmentEngine",
    "EnrichmentOutcome",
    "TransformQueue",
]
