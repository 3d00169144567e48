"""
Star Schema Module
"""
from .dimensions import (
    Created,
    DimensionResolver,
    DomainAttributes,
    DomainClassifier,
    Unchanged,
    Versioned,
)
from .fact_builder import FactBuilder, FactBuildResult, FactScope

__all__ = [
    "Created",
    "DimensionResolver",
    "DomainAttributes",
    "DomainClassifier",
    "Unchanged",
    "Versioned",
    "FactBuilder",
    "FactBuildResult",
    "FactScope",
]
