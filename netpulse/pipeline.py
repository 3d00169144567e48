"""
Medallion Pipeline

Composition root of the request analytics pipeline. Builds the database,
stores, engines and queues from one Settings object and exposes the
capture-facing inputs, the dashboard-facing outputs and the maintenance
operations.

Example:
    async with MedallionPipeline(get_settings()) as pipeline:
        request_id = await pipeline.insert_raw_request(event)
        await pipeline.drain()
        await pipeline.run_aggregation_tick()
        candles = await pipeline.get_ohlc("5min", start_ms, end_ms)
"""

import asyncio
from typing import Any, Callable, List, Mapping, Optional

import structlog
from sqlalchemy import select

from netpulse.analytics.gold import GoldSummarizer
from netpulse.analytics.ohlc import OHLCCandle, OHLCEngine
from netpulse.analytics.quality import QualityReport, QualityScorer
from netpulse.config.settings import Settings, get_settings
from netpulse.database.connection import Database
from netpulse.database.models import (
    BronzeRequest,
    DimDomain,
    GoldDailyAnalytics,
    GoldDomainPerformance,
    SilverDomainStats,
    SilverRequest,
    SilverResourceStats,
)
from netpulse.errors import NotFoundError
from netpulse.ingestion.bronze_store import BronzeStore, HeadersInput
from netpulse.ingestion.retention import PurgeResult, RetentionManager
from netpulse.transformation.enrichers import RequestEnricher
from netpulse.transformation.enrichment_engine import EnrichmentEngine
from netpulse.transformation.transform_queue import TransformQueue
from netpulse.warehouse.dimensions import DimensionResolver, DomainClassifier
from netpulse.warehouse.fact_builder import FactBuilder
from netpulse.warehouse.time_buckets import now_ms
from netpulse.workflows.outbox import ReadyOutbox
from netpulse.workflows.scheduler import AggregationScheduler, TickResult

logger = structlog.get_logger(__name__)


class MedallionPipeline:
    """
    Bronze -> Silver -> Gold pipeline over one SQLite database.

    Owns every collaborator; nothing is module-global, so several pipelines
    (for example one per test) can coexist in one process.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], int] = now_ms):
        self.settings = settings or get_settings()
        self.clock = clock
        pipeline_settings = self.settings.pipeline

        self.database = Database(self.settings.database)
        self.bronze = BronzeStore(self.database, clock)

        self.resolver = DimensionResolver(clock)
        self.classifier = DomainClassifier(pipeline_settings)
        self.enricher = RequestEnricher(pipeline_settings)
        self.fact_builder = FactBuilder(self.resolver, self.classifier)
        self.engine = EnrichmentEngine(self.database, self.enricher, self.fact_builder, clock)
        self.queue = TransformQueue(self.engine.enrich, maxsize=pipeline_settings.queue_maxsize)

        self.outbox = ReadyOutbox(self.database)
        self.ohlc = OHLCEngine(self.database)
        self.quality = QualityScorer(self.database, pipeline_settings.quality_period_type)
        self.gold = GoldSummarizer(self.database, clock)
        self.scheduler = AggregationScheduler(
            self.outbox, self.ohlc, self.quality, self.gold, pipeline_settings, clock
        )
        self.retention = RetentionManager(self.database, self.settings.retention.retention_days, clock)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> "MedallionPipeline":
        """Open the database, create the schema and seed reference dimensions."""
        await self.database.connect()
        async with self.database.session() as session:
            await self.resolver.seed_reference_dimensions(session)
        logger.info("Medallion pipeline started", database=self.settings.database.get_url())
        return self

    async def close(self) -> None:
        """Drain pending enrichment, stop the scheduler and close the database."""
        await self.queue.stop()
        await self.scheduler.stop()
        await self.database.close()
        logger.info("Medallion pipeline closed")

    async def __aenter__(self) -> "MedallionPipeline":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # INPUTS (best-effort, never raise to the capture side)
    # =========================================================================

    def _enqueue(self, request_id: str) -> None:
        try:
            self.queue.enqueue(request_id)
        except asyncio.QueueFull:
            logger.warning("Transform queue full, request left pending", request_id=request_id)

    async def insert_raw_request(self, event: Mapping[str, Any]) -> Optional[str]:
        """Store a raw request and queue it for enrichment."""
        request_id = await self.bronze.insert_raw_request(event)
        if request_id is not None:
            self._enqueue(request_id)
        return request_id

    async def insert_headers(self, request_id: str, headers: HeadersInput, header_type: str = "request") -> int:
        """Store headers; response headers re-enrich the request (compression flag)."""
        written = await self.bronze.insert_headers(request_id, headers, header_type)
        if written and header_type == "response":
            self._enqueue(request_id)
        return written

    async def insert_timings(self, request_id: str, timings: Mapping[str, Any]) -> bool:
        """Store timings and re-enrich the request so its metrics pick them up."""
        stored = await self.bronze.insert_timings(request_id, timings)
        if stored:
            self._enqueue(request_id)
        return stored

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def drain(self) -> None:
        """Wait for every queued enrichment to finish."""
        await self.queue.join()

    async def enrich_pending(self) -> int:
        """
        Queue every raw request without a Silver record, then drain.

        Returns:
            Number of requests queued
        """
        async with self.database.session() as session:
            pending = (await session.scalars(
                select(BronzeRequest.id)
                .outerjoin(SilverRequest, SilverRequest.id == BronzeRequest.id)
                .where(SilverRequest.id.is_(None))
                .order_by(BronzeRequest.timestamp)
            )).all()

        for request_id in pending:
            self._enqueue(request_id)
        await self.drain()
        return len(pending)

    async def run_aggregation_tick(self) -> TickResult:
        return await self.scheduler.tick()

    async def run_gold(self, days: Optional[int] = None) -> List[str]:
        return await self.gold.run(days or self.settings.pipeline.gold_window_days)

    async def purge_before(self, cutoff_ms: int) -> PurgeResult:
        """Drain the transform queue, then purge raw telemetry older than the cutoff."""
        await self.drain()
        return await self.retention.purge_before(cutoff_ms)

    # =========================================================================
    # OUTPUTS
    # =========================================================================

    async def get_ohlc(
        self,
        period_type: str,
        start_ms: int,
        end_ms: int,
        domain: Optional[str] = None,
        resource_type: Optional[str] = None,
        refresh: bool = False,
    ) -> List[OHLCCandle]:
        """Stored candles for a range, regenerated first when refresh is set."""
        if refresh:
            return await self.ohlc.generate(period_type, start_ms, end_ms, domain, resource_type)
        return await self.ohlc.get(period_type, start_ms, end_ms, domain, resource_type)

    async def get_quality_metrics(self, time_key: int, domain_key: Optional[int] = None) -> QualityReport:
        """
        Quality report of the slice containing a time key; computed on first request.

        Raises:
            NotFoundError: If the time key or domain key does not exist
        """
        domain = None
        if domain_key is not None:
            async with self.database.session() as session:
                domain = await session.scalar(
                    select(DimDomain.domain).where(DimDomain.domain_key == domain_key)
                )
            if domain is None:
                raise NotFoundError("Unknown domain key", {"domain_key": domain_key})

        report = await self.quality.get(time_key, domain)
        if report is None:
            report = await self.quality.score(time_key, domain)
        return report

    async def get_daily_analytics(self, date: str) -> Optional[GoldDailyAnalytics]:
        return await self.gold.get_daily(date)

    async def get_domain_performance(self, date: str) -> List[GoldDomainPerformance]:
        return await self.gold.get_domain_performance(date)

    async def get_domain_stats(self, domain: str) -> Optional[SilverDomainStats]:
        async with self.database.session() as session:
            return await session.get(SilverDomainStats, domain)

    async def get_resource_stats(self, resource_type: str) -> Optional[SilverResourceStats]:
        async with self.database.session() as session:
            return await session.get(SilverResourceStats, resource_type)
