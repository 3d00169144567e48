"""
Enrichment Engine

Bronze -> Silver -> Fact for a single raw request. Everything one enrichment
writes (Silver record and metrics, Silver aggregates, the RequestFact and its
ready events) commits or rolls back together.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.database.connection import Database
from netpulse.database.models import (
    BronzeRequest,
    BronzeRequestTiming,
    SilverRequest,
    SilverRequestMetrics,
)
from netpulse.errors import MalformedInputError
from netpulse.transformation.enrichers import Enrichment, RequestEnricher
from netpulse.transformation.silver_stats import recompute_domain_stats, recompute_resource_stats
from netpulse.warehouse.fact_builder import FactBuilder, FactBuildResult
from netpulse.warehouse.time_buckets import now_ms
from netpulse.workflows.outbox import ReadyOutbox

logger = structlog.get_logger(__name__)


@dataclass
class EnrichmentOutcome:
    """Result of enriching one raw request"""
    request_id: str
    enrichment: Enrichment
    fact: FactBuildResult
    ready_events: int


class EnrichmentEngine:
    """
    Enriches raw requests and builds their facts.

    Example:
        engine = EnrichmentEngine(database, enricher, fact_builder)
        outcome = await engine.enrich("req-1")
    """

    def __init__(
        self,
        database: Database,
        enricher: RequestEnricher,
        fact_builder: FactBuilder,
        clock: Callable[[], int] = now_ms,
    ):
        self.database = database
        self.enricher = enricher
        self.fact_builder = fact_builder
        self.clock = clock

    async def enrich(self, request_id: str) -> Optional[EnrichmentOutcome]:
        """
        Enrich one raw request.

        Args:
            request_id: Bronze request id

        Returns:
            EnrichmentOutcome, or None when the raw request does not exist

        Raises:
            MalformedInputError: If the raw request cannot be enriched; any
                earlier enrichment of the id has been withdrawn by then
            StorageError: If the transaction failed
        """
        async with self.database.session() as session:
            raw = await session.get(BronzeRequest, request_id)
            if raw is None:
                logger.debug("No bronze request for id", request_id=request_id)
                return None

            now = self.clock()
            try:
                enrichment = self.enricher.enrich(
                    url=raw.url,
                    status=raw.status,
                    duration=raw.duration,
                    error=raw.error,
                    from_cache=bool(raw.from_cache),
                    size_bytes=raw.size_bytes or 0,
                )
            except MalformedInputError as e:
                # Commit the withdrawal of any earlier enrichment before reporting
                rejected = e
                await self._withdraw(session, raw, now)
            else:
                rejected = None
                record, previous_domain, previous_type = await self._upsert_silver(session, raw, enrichment, now)
                await self._upsert_metrics(session, request_id, now)

                for domain in {previous_domain, raw.domain} - {None}:
                    await recompute_domain_stats(session, domain, now)
                for resource_type in {previous_type, raw.type} - {None}:
                    await recompute_resource_stats(session, resource_type, now)

                fact = await self.fact_builder.build_fact(session, record, now)

                published = ReadyOutbox.publish(session, request_id, [fact.scope], now)
                published += ReadyOutbox.publish(session, request_id, fact.retracted, now, retraction=True)

        if rejected is not None:
            raise rejected

        logger.debug(
            "Request enriched",
            request_id=request_id,
            performance_score=enrichment.performance_score,
            quality_score=enrichment.quality_score,
            request_fact_key=fact.request_fact_key,
        )
        return EnrichmentOutcome(
            request_id=request_id,
            enrichment=enrichment,
            fact=fact,
            ready_events=published,
        )

    async def _withdraw(self, session: AsyncSession, raw: BronzeRequest, now: int) -> int:
        """
        Remove what an earlier enrichment of a now-malformed request produced.

        Deletes the Silver record, its metrics and its facts, rebuilds the
        affected Silver aggregates and stages retraction events.

        Returns:
            Number of retraction events staged
        """
        record = await session.get(SilverRequest, raw.id)
        stale_domains = {raw.domain}
        stale_types = {raw.type}
        retracted = []

        if record is not None:
            stale_domains.add(record.domain)
            stale_types.add(record.type)
            retracted = await self.fact_builder.retract(session, raw.id)
            await session.execute(delete(SilverRequestMetrics).where(SilverRequestMetrics.request_id == raw.id))
            await session.delete(record)
            await session.flush()

        for domain in stale_domains - {None}:
            await recompute_domain_stats(session, domain, now)
        for resource_type in stale_types - {None}:
            await recompute_resource_stats(session, resource_type, now)

        published = ReadyOutbox.publish(session, raw.id, retracted, now, retraction=True)
        if record is not None:
            logger.info(
                "Withdrew enrichment of malformed re-ingested request",
                request_id=raw.id,
                retracted_facts=len(retracted),
            )
        return published

    async def _upsert_silver(
        self,
        session: AsyncSession,
        raw: BronzeRequest,
        enrichment: Enrichment,
        now: int,
    ):
        record = await session.get(SilverRequest, raw.id)
        previous_domain = previous_type = None
        if record is None:
            record = SilverRequest(id=raw.id, created_at=now)
            session.add(record)
        else:
            previous_domain, previous_type = record.domain, record.type

        record.url = raw.url
        record.method = raw.method or "GET"
        record.type = raw.type or "other"
        record.status = raw.status or 0
        record.status_text = raw.status_text or ""
        record.domain = raw.domain or enrichment.hostname
        record.path = raw.path
        record.protocol = raw.protocol
        record.duration = raw.duration or 0
        record.size_bytes = raw.size_bytes or 0
        record.timestamp = raw.timestamp
        record.tab_id = raw.tab_id
        record.page_url = raw.page_url
        record.from_cache = bool(raw.from_cache)
        record.is_third_party = enrichment.is_third_party
        record.is_secure = enrichment.is_secure
        record.has_error = enrichment.has_error
        record.performance_score = enrichment.performance_score
        record.quality_score = enrichment.quality_score
        record.updated_at = now

        await session.flush()
        return record, previous_domain, previous_type

    async def _upsert_metrics(self, session: AsyncSession, request_id: str, now: int) -> None:
        timing = await session.get(BronzeRequestTiming, request_id)
        if timing is None:
            return

        metrics = await session.get(SilverRequestMetrics, request_id)
        if metrics is None:
            metrics = SilverRequestMetrics(request_id=request_id)
            session.add(metrics)

        request_duration = timing.request_duration or 0
        response_duration = timing.response_duration or 0
        metrics.total_time = request_duration + response_duration
        metrics.dns_time = timing.dns_duration or 0
        metrics.tcp_time = timing.tcp_duration or 0
        metrics.ssl_time = timing.ssl_duration or 0
        metrics.wait_time = request_duration
        metrics.download_time = response_duration
        metrics.created_at = now
        await session.flush()
