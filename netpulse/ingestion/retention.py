"""
Retention Purge

Deletes raw telemetry older than a cutoff together with everything derived
from it row-for-row (headers, timings, Silver records and metrics, request
facts), then refreshes the Silver aggregates it touched. Gold and OHLC rows
are summaries and are retained.

The purge is a single transaction: it either removes everything or nothing.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy import delete, select

from netpulse.database.connection import Database
from netpulse.database.models import (
    BronzeRequest,
    BronzeRequestHeader,
    BronzeRequestTiming,
    FactRequest,
    SilverRequest,
    SilverRequestMetrics,
)
from netpulse.errors import StorageError
from netpulse.transformation.silver_stats import recompute_domain_stats, recompute_resource_stats
from netpulse.warehouse.time_buckets import DAY_MS, now_ms

logger = structlog.get_logger(__name__)


@dataclass
class PurgeResult:
    """Rows removed per table"""
    cutoff_ms: int
    deleted: Dict[str, int] = field(default_factory=dict)

    @property
    def requests_deleted(self) -> int:
        return self.deleted.get("bronze_requests", 0)


class RetentionManager:
    """
    Enforces the raw telemetry retention window.

    Example:
        retention = RetentionManager(database, retention_days=7)
        result = await retention.purge_by_retention_policy()
    """

    def __init__(
        self,
        database: Database,
        retention_days: int = 7,
        clock: Callable[[], int] = now_ms,
    ):
        self.database = database
        self.retention_days = retention_days
        self.clock = clock

    async def purge_before(self, cutoff_ms: int) -> PurgeResult:
        """
        Delete raw requests with a timestamp before the cutoff and their derivations.

        Args:
            cutoff_ms: Epoch milliseconds; rows strictly older are purged

        Returns:
            PurgeResult with per-table counts

        Raises:
            StorageError: If the purge failed; nothing was deleted
        """
        result = PurgeResult(cutoff_ms=cutoff_ms)
        expired = select(BronzeRequest.id).where(BronzeRequest.timestamp < cutoff_ms)

        try:
            async with self.database.session() as session:
                keys = (await session.execute(
                    select(BronzeRequest.domain, BronzeRequest.type)
                    .where(BronzeRequest.timestamp < cutoff_ms)
                    .distinct()
                )).all()
                if not keys:
                    return result

                for table, column in (
                    (BronzeRequestHeader, BronzeRequestHeader.request_id),
                    (BronzeRequestTiming, BronzeRequestTiming.request_id),
                    (FactRequest, FactRequest.request_id),
                    (SilverRequestMetrics, SilverRequestMetrics.request_id),
                    (SilverRequest, SilverRequest.id),
                ):
                    outcome = await session.execute(delete(table).where(column.in_(expired)))
                    result.deleted[table.__tablename__] = outcome.rowcount

                outcome = await session.execute(delete(BronzeRequest).where(BronzeRequest.timestamp < cutoff_ms))
                result.deleted[BronzeRequest.__tablename__] = outcome.rowcount

                now = self.clock()
                for domain in {k.domain for k in keys} - {None}:
                    await recompute_domain_stats(session, domain, now)
                for resource_type in {k.type for k in keys} - {None}:
                    await recompute_resource_stats(session, resource_type, now)
        except StorageError as e:
            logger.error("Retention purge rolled back", cutoff_ms=cutoff_ms, error=e.message)
            raise

        logger.info("Retention purge complete", cutoff_ms=cutoff_ms, deleted=result.deleted)
        return result

    async def purge_by_retention_policy(self, retention_days: Optional[int] = None) -> PurgeResult:
        """Purge everything older than the retention window."""
        days = self.retention_days if retention_days is None else retention_days
        return await self.purge_before(self.clock() - days * DAY_MS)
