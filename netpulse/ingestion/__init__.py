"""
Data Ingestion Module
"""
from .bronze_store import BronzeStore, RawRequestEvent, RawTimings
from .retention import PurgeResult, RetentionManager

__all__ = [
    "BronzeStore",
    "RawRequestEvent",
    "RawTimings",
    "PurgeResult",
    "RetentionManager",
]
