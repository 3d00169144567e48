"""
OHLC Performance Engine

Builds latency candles per time bucket from RequestFacts, in the manner of
price candles: open and close are the latencies of the first and last request
in the bucket (by fact insertion order), high and low the extremes.

Candles are keyed by (period_type, period_start, domain, resource_type) where
domain and resource_type are optional scope names; regeneration is an
idempotent upsert.
"""

from dataclasses import asdict, dataclass
from typing import List, Optional

import numpy as np
import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.analytics.statistics import percentile_summary, safe_ratio
from netpulse.database.connection import Database
from netpulse.database.models import (
    DimDomain,
    DimResourceType,
    DimStatusCode,
    DimTime,
    FactOHLCPerformance,
    FactRequest,
)
from netpulse.warehouse.time_buckets import now_ms, period_bounds, period_width

logger = structlog.get_logger(__name__)


@dataclass
class OHLCCandle:
    """One latency candle"""
    period_type: str
    bucket: int
    period_start: int
    period_end: int
    domain: Optional[str]
    resource_type: Optional[str]
    open_time: float
    high_time: float
    low_time: float
    close_time: float
    request_count: int
    total_bytes: int
    avg_response_time: float
    median_response_time: float
    p95_response_time: float
    p99_response_time: float
    success_count: int
    error_count: int
    error_rate: float  # fraction 0-1
    avg_performance_score: float
    avg_quality_score: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: FactOHLCPerformance) -> "OHLCCandle":
        return cls(**{name: getattr(row, name) for name in cls.__dataclass_fields__})


def _scope_filter(column, value: Optional[str]):
    return column.is_(None) if value is None else column == value


class OHLCEngine:
    """
    Generates and reads OHLC candles.

    Example:
        engine = OHLCEngine(database)
        candles = await engine.generate("5min", start_ms, end_ms, domain="example.com")
    """

    def __init__(self, database: Database):
        self.database = database

    async def generate(
        self,
        period_type: str,
        start_ms: int,
        end_ms: int,
        domain: Optional[str] = None,
        resource_type: Optional[str] = None,
    ) -> List[OHLCCandle]:
        """
        Recompute candles for every bucket touched by time dimension rows in range.

        Args:
            period_type: Granularity (1min ... 1d)
            start_ms: Range start, inclusive
            end_ms: Range end, inclusive
            domain: Optional domain name scope (spans all SCD versions)
            resource_type: Optional resource type name scope

        Returns:
            Candles for buckets that contain matching facts, in time order
        """
        period_width(period_type)  # raises on unknown granularity
        bucket_column = getattr(DimTime, f"period_{period_type}")

        candles: List[OHLCCandle] = []
        async with self.database.session() as session:
            buckets = (await session.scalars(
                select(bucket_column)
                .where(DimTime.timestamp >= start_ms, DimTime.timestamp <= end_ms)
                .distinct()
                .order_by(bucket_column)
            )).all()

            computed_at = now_ms()
            for bucket in buckets:
                candle = await self._refresh_bucket(
                    session, period_type, bucket, domain, resource_type, computed_at
                )
                if candle is not None:
                    candles.append(candle)

        logger.debug(
            "OHLC candles generated",
            period_type=period_type,
            buckets=len(buckets),
            candles=len(candles),
            domain=domain,
            resource_type=resource_type,
        )
        return candles

    async def _refresh_bucket(
        self,
        session: AsyncSession,
        period_type: str,
        bucket: int,
        domain: Optional[str],
        resource_type: Optional[str],
        computed_at: int,
    ) -> Optional[OHLCCandle]:
        bucket_column = getattr(DimTime, f"period_{period_type}")
        period_start, period_end = period_bounds(bucket, period_type)

        query = (
            select(
                FactRequest.duration_ms,
                FactRequest.size_bytes,
                FactRequest.has_error,
                DimStatusCode.is_success,
                FactRequest.performance_score,
                FactRequest.quality_score,
            )
            .select_from(FactRequest)
            .join(DimTime, FactRequest.time_key == DimTime.time_key)
            .join(DimDomain, FactRequest.domain_key == DimDomain.domain_key)
            .join(DimResourceType, FactRequest.resource_type_key == DimResourceType.resource_type_key)
            .outerjoin(DimStatusCode, FactRequest.status_code_key == DimStatusCode.status_code_key)
            .where(bucket_column == bucket)
            .order_by(FactRequest.request_fact_key)
        )
        if domain is not None:
            query = query.where(DimDomain.domain == domain)
        if resource_type is not None:
            query = query.where(DimResourceType.resource_type == resource_type)

        rows = (await session.execute(query)).all()

        scope = [
            FactOHLCPerformance.period_type == period_type,
            FactOHLCPerformance.period_start == period_start,
            _scope_filter(FactOHLCPerformance.domain, domain),
            _scope_filter(FactOHLCPerformance.resource_type, resource_type),
        ]

        if not rows:
            await session.execute(delete(FactOHLCPerformance).where(*scope))
            return None

        durations = np.array([r.duration_ms or 0.0 for r in rows], dtype=float)
        volume = len(rows)
        errors = sum(1 for r in rows if r.has_error)
        percentiles = percentile_summary(durations)

        candle = OHLCCandle(
            period_type=period_type,
            bucket=bucket,
            period_start=period_start,
            period_end=period_end,
            domain=domain,
            resource_type=resource_type,
            open_time=float(durations[0]),
            high_time=float(durations.max()),
            low_time=float(durations.min()),
            close_time=float(durations[-1]),
            request_count=volume,
            total_bytes=int(sum(r.size_bytes or 0 for r in rows)),
            avg_response_time=float(durations.mean()),
            median_response_time=percentiles["median"],
            p95_response_time=percentiles["p95"],
            p99_response_time=percentiles["p99"],
            success_count=sum(1 for r in rows if r.is_success),
            error_count=errors,
            error_rate=safe_ratio(errors, volume),
            avg_performance_score=float(np.mean([r.performance_score or 0 for r in rows])),
            avg_quality_score=float(np.mean([r.quality_score or 0 for r in rows])),
        )

        existing = await session.scalar(select(FactOHLCPerformance).where(*scope))
        if existing is None:
            existing = FactOHLCPerformance()
            session.add(existing)
        for name, value in candle.to_dict().items():
            setattr(existing, name, value)
        existing.computed_at = computed_at
        await session.flush()

        return candle

    async def get(
        self,
        period_type: str,
        start_ms: int,
        end_ms: int,
        domain: Optional[str] = None,
        resource_type: Optional[str] = None,
    ) -> List[OHLCCandle]:
        """Stored candles whose period starts within the range."""
        width = period_width(period_type)
        async with self.database.session() as session:
            rows = (await session.scalars(
                select(FactOHLCPerformance)
                .where(
                    FactOHLCPerformance.period_type == period_type,
                    FactOHLCPerformance.period_start >= start_ms - (start_ms % width),
                    FactOHLCPerformance.period_start <= end_ms,
                    _scope_filter(FactOHLCPerformance.domain, domain),
                    _scope_filter(FactOHLCPerformance.resource_type, resource_type),
                )
                .order_by(FactOHLCPerformance.period_start)
            )).all()
            return [OHLCCandle.from_row(r) for r in rows]
