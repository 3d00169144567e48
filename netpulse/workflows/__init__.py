"""
Pipeline Workflows Module
"""
from .outbox import ReadyEvent, ReadyOutbox
from .scheduler import AggregationScheduler, TickResult

__all__ = [
    "ReadyEvent",
    "ReadyOutbox",
    "AggregationScheduler",
    "TickResult",
]
