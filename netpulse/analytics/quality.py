"""
Quality & Reliability Scorer

Scores a time slice of RequestFacts: availability, performance index,
latency consistency (reliability), transport security, a latency histogram
and cache efficiency. A slice is every fact in the same bucket as a given
time dimension row, optionally restricted to one domain.
"""

from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.analytics.statistics import reliability_score, safe_ratio
from netpulse.database.connection import Database
from netpulse.database.models import (
    DimDomain,
    DimStatusCode,
    DimTime,
    FactQualityMetrics,
    FactRequest,
)
from netpulse.errors import NotFoundError
from netpulse.warehouse.time_buckets import now_ms, period_bounds, period_width

logger = structlog.get_logger(__name__)

# upper bounds (exclusive) of the latency histogram bins, in ms
LATENCY_BINS = (100, 500, 1000, 3000)


@dataclass
class QualityReport:
    """Quality metrics of one slice"""
    period_type: str
    bucket: int
    period_start: int
    period_end: int
    domain: Optional[str]
    availability_rate: float
    performance_index: float
    reliability_score: float
    security_score: float
    total_requests: int
    successful_requests: int
    failed_requests: int
    requests_under_100ms: int
    requests_under_500ms: int
    requests_under_1s: int
    requests_under_3s: int
    requests_over_3s: int
    total_data_transferred: int
    cached_data_bytes: int
    cache_hit_rate: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: FactQualityMetrics) -> "QualityReport":
        return cls(**{name: getattr(row, name) for name in cls.__dataclass_fields__})


def latency_histogram(durations: np.ndarray) -> dict:
    """Count latencies per bin: <100, 100-500, 500-1000, 1000-3000, >=3000 ms."""
    bins = np.searchsorted(np.asarray(LATENCY_BINS, dtype=float), durations, side="right")
    counts = np.bincount(bins.astype(int), minlength=len(LATENCY_BINS) + 1)
    return {
        "requests_under_100ms": int(counts[0]),
        "requests_under_500ms": int(counts[1]),
        "requests_under_1s": int(counts[2]),
        "requests_under_3s": int(counts[3]),
        "requests_over_3s": int(counts[4]),
    }


class QualityScorer:
    """
    Computes and stores quality metrics per slice.

    Example:
        scorer = QualityScorer(database, default_period_type="1h")
        report = await scorer.score(time_key, domain="example.com")
    """

    def __init__(self, database: Database, default_period_type: str = "1h"):
        period_width(default_period_type)
        self.database = database
        self.default_period_type = default_period_type

    async def score(
        self,
        time_key: int,
        domain: Optional[str] = None,
        period_type: Optional[str] = None,
    ) -> QualityReport:
        """
        Score the slice containing a time dimension row and upsert the result.

        Args:
            time_key: Time dimension key locating the slice
            domain: Optional domain name restriction
            period_type: Slice granularity (defaults to the configured one)

        Returns:
            QualityReport

        Raises:
            NotFoundError: If the time key does not exist
        """
        period_type = period_type or self.default_period_type
        period_width(period_type)

        async with self.database.session() as session:
            bucket = await session.scalar(
                select(getattr(DimTime, f"period_{period_type}")).where(DimTime.time_key == time_key)
            )
            if bucket is None:
                raise NotFoundError("Unknown time key", {"time_key": time_key})
            return await self.score_bucket(session, period_type, bucket, domain)

    async def score_period(self, period_type: str, bucket: int, domain: Optional[str] = None) -> QualityReport:
        """Score one bucket in its own transaction."""
        period_width(period_type)
        async with self.database.session() as session:
            return await self.score_bucket(session, period_type, bucket, domain)

    async def score_bucket(
        self,
        session: AsyncSession,
        period_type: str,
        bucket: int,
        domain: Optional[str] = None,
    ) -> QualityReport:
        """Score one bucket inside the caller's session."""
        bucket_column = getattr(DimTime, f"period_{period_type}")
        period_start, period_end = period_bounds(bucket, period_type)

        query = (
            select(
                FactRequest.duration_ms,
                FactRequest.size_bytes,
                FactRequest.is_cached,
                FactRequest.is_secure,
                FactRequest.performance_score,
                DimStatusCode.is_success,
            )
            .select_from(FactRequest)
            .join(DimTime, FactRequest.time_key == DimTime.time_key)
            .join(DimDomain, FactRequest.domain_key == DimDomain.domain_key)
            .outerjoin(DimStatusCode, FactRequest.status_code_key == DimStatusCode.status_code_key)
            .where(bucket_column == bucket)
        )
        if domain is not None:
            query = query.where(DimDomain.domain == domain)

        rows = (await session.execute(query)).all()

        total = len(rows)
        durations = np.array([r.duration_ms or 0.0 for r in rows], dtype=float)
        successes = sum(1 for r in rows if r.is_success)
        secure = sum(1 for r in rows if r.is_secure)
        total_bytes = int(sum(r.size_bytes or 0 for r in rows))
        cached_bytes = int(sum(r.size_bytes or 0 for r in rows if r.is_cached))

        report = QualityReport(
            period_type=period_type,
            bucket=bucket,
            period_start=period_start,
            period_end=period_end,
            domain=domain,
            availability_rate=safe_ratio(successes, total, 100),
            performance_index=float(np.mean([r.performance_score or 0 for r in rows])) if rows else 0.0,
            reliability_score=reliability_score(durations),
            security_score=safe_ratio(secure, total, 100),
            total_requests=total,
            successful_requests=successes,
            failed_requests=total - successes,
            total_data_transferred=total_bytes,
            cached_data_bytes=cached_bytes,
            cache_hit_rate=safe_ratio(cached_bytes, total_bytes, 100),
            **latency_histogram(durations),
        )

        existing = await session.scalar(
            select(FactQualityMetrics).where(
                FactQualityMetrics.period_type == period_type,
                FactQualityMetrics.period_start == period_start,
                FactQualityMetrics.domain.is_(None) if domain is None else FactQualityMetrics.domain == domain,
            )
        )
        if existing is None:
            existing = FactQualityMetrics()
            session.add(existing)
        for name, value in report.to_dict().items():
            setattr(existing, name, value)
        existing.computed_at = now_ms()
        await session.flush()

        logger.debug(
            "Quality slice scored",
            period_type=period_type,
            period_start=period_start,
            domain=domain,
            total_requests=total,
        )
        return report

    async def get(
        self,
        time_key: int,
        domain: Optional[str] = None,
        period_type: Optional[str] = None,
    ) -> Optional[QualityReport]:
        """Stored report of the slice containing a time key, if computed."""
        period_type = period_type or self.default_period_type
        width = period_width(period_type)

        async with self.database.session() as session:
            timestamp = await session.scalar(select(DimTime.timestamp).where(DimTime.time_key == time_key))
            if timestamp is None:
                raise NotFoundError("Unknown time key", {"time_key": time_key})

            row = await session.scalar(
                select(FactQualityMetrics).where(
                    FactQualityMetrics.period_type == period_type,
                    FactQualityMetrics.period_start == timestamp // width * width,
                    FactQualityMetrics.domain.is_(None) if domain is None else FactQualityMetrics.domain == domain,
                )
            )
            return QualityReport.from_row(row) if row is not None else None
