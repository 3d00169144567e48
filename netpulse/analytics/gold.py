"""
Gold Summarizer

Daily reporting rollups computed from Bronze over a UTC calendar day:
- Daily analytics: volume, latency distribution, error rate, top domains
- Domain performance: per-domain latency and error rate with a letter grade

Both tables are idempotent upserts, so any day can be re-summarized at will.
"""

from typing import Callable, List, Optional

import polars as pl
import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.analytics.statistics import nearest_rank_percentile, percentile_summary, safe_ratio
from netpulse.database.connection import Database
from netpulse.database.models import BronzeRequest, GoldDailyAnalytics, GoldDomainPerformance
from netpulse.warehouse.time_buckets import DAY_MS, date_of, day_bounds, now_ms

logger = structlog.get_logger(__name__)

TOP_DOMAINS_LIMIT = 5

# (exclusive upper bound of average latency in ms, grade)
GRADE_THRESHOLDS = [(100, "A"), (500, "B"), (1000, "C"), (2000, "D")]


def performance_grade(avg_response_time: float) -> str:
    """Letter grade for an average latency."""
    for bound, grade in GRADE_THRESHOLDS:
        if avg_response_time < bound:
            return grade
    return "F"


def _grade_expr(column: str) -> pl.Expr:
    first_bound, first_grade = GRADE_THRESHOLDS[0]
    expr = pl.when(pl.col(column) < first_bound).then(pl.lit(first_grade))
    for bound, grade in GRADE_THRESHOLDS[1:]:
        expr = expr.when(pl.col(column) < bound).then(pl.lit(grade))
    return expr.otherwise(pl.lit("F"))


class GoldSummarizer:
    """
    Builds the Gold reporting tables.

    Example:
        gold = GoldSummarizer(database)
        await gold.summarize_day("2024-03-01")
        await gold.summarize_domains("2024-03-01")
    """

    def __init__(self, database: Database, clock: Callable[[], int] = now_ms):
        self.database = database
        self.clock = clock

    async def _day_frame(self, session: AsyncSession, date: str) -> pl.DataFrame:
        start, end = day_bounds(date)
        rows = (await session.execute(
            select(
                BronzeRequest.domain,
                BronzeRequest.duration,
                BronzeRequest.size_bytes,
                BronzeRequest.status,
                BronzeRequest.error,
            ).where(BronzeRequest.timestamp >= start, BronzeRequest.timestamp <= end)
        )).all()

        return pl.DataFrame(
            {
                "domain": [r.domain for r in rows],
                "duration": [float(r.duration) if r.duration is not None else None for r in rows],
                "size_bytes": [int(r.size_bytes or 0) for r in rows],
                "is_error": [
                    bool(r.error) or (r.status is not None and r.status >= 400) for r in rows
                ],
            },
            schema={
                "domain": pl.Utf8,
                "duration": pl.Float64,
                "size_bytes": pl.Int64,
                "is_error": pl.Boolean,
            },
        )

    async def summarize_day(self, date: str) -> GoldDailyAnalytics:
        """
        Upsert the daily analytics row of one UTC day.

        Args:
            date: Day as YYYY-MM-DD

        Returns:
            The stored row
        """
        now = self.clock()
        async with self.database.session() as session:
            df = await self._day_frame(session, date)

            durations = df.get_column("duration").drop_nulls().to_list()
            percentiles = percentile_summary(durations)
            total = df.height
            errors = int(df.get_column("is_error").sum()) if total else 0

            top = (
                df.drop_nulls("domain")
                .group_by("domain")
                .agg(pl.len().alias("count"))
                .sort(["count", "domain"], descending=[True, False])
                .head(TOP_DOMAINS_LIMIT)
            )

            values = {
                "date": date,
                "total_requests": total,
                "total_bytes": int(df.get_column("size_bytes").sum()) if total else 0,
                "avg_response_time": sum(durations) / len(durations) if durations else 0.0,
                "median_response_time": percentiles["median"],
                "p95_response_time": percentiles["p95"],
                "p99_response_time": percentiles["p99"],
                "error_rate": safe_ratio(errors, total, 100),
                "unique_domains": df.get_column("domain").drop_nulls().n_unique() if total else 0,
                "top_domains": top.to_dicts(),
                "created_at": now,
                "updated_at": now,
            }
            stmt = sqlite_insert(GoldDailyAnalytics).values(**values)
            await session.execute(stmt.on_conflict_do_update(
                index_elements=[GoldDailyAnalytics.date],
                set_={k: v for k, v in values.items() if k not in ("date", "created_at")},
            ))
            row = await session.get(GoldDailyAnalytics, date, populate_existing=True)

        logger.info("Daily analytics summarized", date=date, total_requests=total)
        return row

    async def summarize_domains(self, date: str) -> List[GoldDomainPerformance]:
        """
        Replace the per-domain performance rows of one UTC day.

        Returns:
            Stored rows ordered by request count, descending
        """
        now = self.clock()
        async with self.database.session() as session:
            df = await self._day_frame(session, date)

            per_domain = (
                df.drop_nulls("domain")
                .group_by("domain")
                .agg([
                    pl.len().alias("request_count"),
                    pl.col("size_bytes").sum().alias("total_bytes"),
                    pl.col("duration").mean().fill_null(0.0).alias("avg_response_time"),
                    pl.col("duration").drop_nulls().alias("durations"),
                    pl.col("is_error").sum().alias("error_count"),
                ])
                .with_columns(
                    _grade_expr("avg_response_time").alias("performance_grade")
                )
                .sort(["request_count", "domain"], descending=[True, False])
            )

            await session.execute(delete(GoldDomainPerformance).where(GoldDomainPerformance.date == date))

            rows: List[GoldDomainPerformance] = []
            for record in per_domain.iter_rows(named=True):
                row = GoldDomainPerformance(
                    domain=record["domain"],
                    date=date,
                    request_count=record["request_count"],
                    total_bytes=int(record["total_bytes"] or 0),
                    avg_response_time=float(record["avg_response_time"]),
                    p95_response_time=nearest_rank_percentile(record["durations"] or [], 95),
                    error_rate=safe_ratio(record["error_count"], record["request_count"], 100),
                    performance_grade=record["performance_grade"],
                    created_at=now,
                )
                session.add(row)
                rows.append(row)

        logger.info("Domain performance summarized", date=date, domains=len(rows))
        return rows

    async def run(self, days: Optional[int] = None) -> List[str]:
        """
        Summarize the trailing window of UTC days, today included.

        Args:
            days: Window length (defaults to 1, today only)

        Returns:
            The dates summarized, newest first
        """
        days = max(1, days or 1)
        now = self.clock()
        dates = [date_of(now - offset * DAY_MS) for offset in range(days)]
        for date in dates:
            await self.summarize_day(date)
            await self.summarize_domains(date)
        return dates

    async def get_daily(self, date: str) -> Optional[GoldDailyAnalytics]:
        async with self.database.session() as session:
            return await session.get(GoldDailyAnalytics, date)

    async def get_domain_performance(self, date: str) -> List[GoldDomainPerformance]:
        async with self.database.session() as session:
            return list((await session.scalars(
                select(GoldDomainPerformance)
                .where(GoldDomainPerformance.date == date)
                .order_by(GoldDomainPerformance.request_count.desc(), GoldDomainPerformance.domain)
            )).all())
