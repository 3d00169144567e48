"""
Pipeline Ready Outbox

Persistent work queue between fact building and downstream aggregation.
Ready events are inserted in the same transaction as the fact they announce,
so a committed fact always has a pending notification and a rolled-back one
never does.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.database.connection import Database
from netpulse.database.models import PipelineReadyEvent
from netpulse.warehouse.fact_builder import FactScope

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReadyEvent:
    """Claimed notification, detached from the session"""
    event_id: int
    request_id: str
    timestamp: int
    domain: Optional[str]
    resource_type: Optional[str]
    is_retraction: bool


class ReadyOutbox:
    """
    Publishes and claims ready events.

    Example:
        outbox = ReadyOutbox(database)
        events = await outbox.claim(limit=500)
        ...
        await outbox.mark_processed([e.event_id for e in events], now)
    """

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def publish(
        session: AsyncSession,
        request_id: str,
        scopes: Iterable[FactScope],
        now: int,
        retraction: bool = False,
    ) -> int:
        """
        Stage ready events for the given fact scopes in the caller's transaction.

        Returns:
            Number of events staged
        """
        count = 0
        for scope in scopes:
            session.add(PipelineReadyEvent(
                request_id=request_id,
                timestamp=scope.timestamp,
                domain=scope.domain,
                resource_type=scope.resource_type,
                is_retraction=retraction,
                created_at=now,
            ))
            count += 1
        return count

    async def claim(self, limit: int = 500) -> List[ReadyEvent]:
        """Oldest unprocessed events, up to limit."""
        async with self.database.session() as session:
            rows = (await session.scalars(
                select(PipelineReadyEvent)
                .where(PipelineReadyEvent.processed_at.is_(None))
                .order_by(PipelineReadyEvent.event_id)
                .limit(limit)
            )).all()
            return [
                ReadyEvent(
                    event_id=r.event_id,
                    request_id=r.request_id,
                    timestamp=r.timestamp,
                    domain=r.domain,
                    resource_type=r.resource_type,
                    is_retraction=r.is_retraction,
                )
                for r in rows
            ]

    async def mark_processed(self, event_ids: Sequence[int], now: int) -> None:
        if not event_ids:
            return
        async with self.database.session() as session:
            await session.execute(
                update(PipelineReadyEvent)
                .where(PipelineReadyEvent.event_id.in_(list(event_ids)))
                .values(processed_at=now)
            )
        logger.debug("Ready events processed", count=len(event_ids))

    async def pending_count(self) -> int:
        async with self.database.session() as session:
            return await session.scalar(
                select(func.count()).select_from(PipelineReadyEvent)
                .where(PipelineReadyEvent.processed_at.is_(None))
            )
