"""
Silver Aggregates

Per-domain and per-resource-type rolling statistics. Each refresh is a full
aggregate over the Bronze rows of one key, so the stored row always agrees
with Bronze at the time of computation.
"""

from typing import Optional

import structlog
from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.database.models import BronzeRequest, SilverDomainStats, SilverResourceStats

logger = structlog.get_logger(__name__)


def _aggregate_columns():
    is_success = and_(BronzeRequest.status >= 200, BronzeRequest.status < 400)
    is_error = or_(BronzeRequest.status >= 400, BronzeRequest.error.is_not(None))
    return [
        func.count().label("total_requests"),
        func.coalesce(func.sum(BronzeRequest.size_bytes), 0).label("total_bytes"),
        func.coalesce(func.avg(BronzeRequest.duration), 0).label("avg_duration"),
        func.coalesce(func.min(BronzeRequest.duration), 0).label("min_duration"),
        func.coalesce(func.max(BronzeRequest.duration), 0).label("max_duration"),
        func.coalesce(func.avg(BronzeRequest.size_bytes), 0).label("avg_size"),
        func.coalesce(func.sum(case((is_success, 1), else_=0)), 0).label("success_count"),
        func.coalesce(func.sum(case((is_error, 1), else_=0)), 0).label("error_count"),
        func.min(BronzeRequest.timestamp).label("first_request_at"),
        func.max(BronzeRequest.timestamp).label("last_request_at"),
    ]


async def recompute_domain_stats(session: AsyncSession, domain: Optional[str], now: int) -> None:
    """
    Rebuild the DomainStat row of one domain from Bronze.

    The row is removed when no Bronze rows remain for the domain.
    """
    if not domain:
        return

    row = (await session.execute(
        select(*_aggregate_columns()).where(BronzeRequest.domain == domain)
    )).one()

    if row.total_requests == 0:
        await session.execute(delete(SilverDomainStats).where(SilverDomainStats.domain == domain))
        return

    values = {
        "domain": domain,
        "total_requests": row.total_requests,
        "total_bytes": row.total_bytes,
        "avg_duration": float(row.avg_duration),
        "min_duration": float(row.min_duration),
        "max_duration": float(row.max_duration),
        "success_count": row.success_count,
        "error_count": row.error_count,
        "first_request_at": row.first_request_at,
        "last_request_at": row.last_request_at,
        "updated_at": now,
    }
    stmt = sqlite_insert(SilverDomainStats).values(**values)
    await session.execute(stmt.on_conflict_do_update(
        index_elements=[SilverDomainStats.domain],
        set_={k: v for k, v in values.items() if k != "domain"},
    ))
    logger.debug("Domain stats refreshed", domain=domain, total_requests=row.total_requests)


async def recompute_resource_stats(session: AsyncSession, resource_type: Optional[str], now: int) -> None:
    """Rebuild the ResourceStat row of one resource type from Bronze."""
    if not resource_type:
        return

    row = (await session.execute(
        select(*_aggregate_columns()).where(BronzeRequest.type == resource_type)
    )).one()

    if row.total_requests == 0:
        await session.execute(
            delete(SilverResourceStats).where(SilverResourceStats.resource_type == resource_type)
        )
        return

    values = {
        "resource_type": resource_type,
        "total_requests": row.total_requests,
        "total_bytes": row.total_bytes,
        "avg_duration": float(row.avg_duration),
        "min_duration": float(row.min_duration),
        "max_duration": float(row.max_duration),
        "avg_size": float(row.avg_size),
        "success_count": row.success_count,
        "error_count": row.error_count,
        "first_request_at": row.first_request_at,
        "last_request_at": row.last_request_at,
        "updated_at": now,
    }
    stmt = sqlite_insert(SilverResourceStats).values(**values)
    await session.execute(stmt.on_conflict_do_update(
        index_elements=[SilverResourceStats.resource_type],
        set_={k: v for k, v in values.items() if k != "resource_type"},
    ))
    logger.debug("Resource stats refreshed", resource_type=resource_type, total_requests=row.total_requests)
