"""
Fact Builder

Turns one enriched Silver record into its star-schema RequestFact.

A raw request that is re-ingested is handled by retract-and-rebuild: live
facts for the request id are deleted and a fresh fact is inserted in the same
transaction. The scopes of retracted facts are returned so the buckets they
used to belong to are recomputed downstream.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.database.models import (
    BronzeRequestHeader,
    DimDomain,
    DimResourceType,
    DimTime,
    FactRequest,
    SilverRequest,
    SilverRequestMetrics,
)
from netpulse.errors import MalformedInputError
from netpulse.warehouse.dimensions import (
    DimensionResolver,
    DomainClassifier,
    DomainTransition,
)

logger = structlog.get_logger(__name__)

COMPRESSED_ENCODINGS = ("gzip", "br", "deflate", "zstd", "compress")


@dataclass(frozen=True)
class FactScope:
    """Where a fact lands in the aggregation grid."""
    timestamp: int
    domain: Optional[str]
    resource_type: Optional[str]


@dataclass
class FactBuildResult:
    """Outcome of building one RequestFact"""
    request_fact_key: int
    time_key: int
    domain_transition: DomainTransition
    scope: FactScope
    retracted: List[FactScope] = field(default_factory=list)


class FactBuilder:
    """
    Builds RequestFacts inside the caller's transaction.

    Example:
        builder = FactBuilder(resolver, classifier)
        result = await builder.build_fact(session, silver_row, now)
    """

    def __init__(self, resolver: DimensionResolver, classifier: DomainClassifier):
        self.resolver = resolver
        self.classifier = classifier

    async def retract(self, session: AsyncSession, request_id: str) -> List[FactScope]:
        """
        Delete live facts of a request id.

        Returns:
            Scopes of the deleted facts
        """
        rows = (await session.execute(
            select(DimTime.timestamp, DimDomain.domain, DimResourceType.resource_type)
            .select_from(FactRequest)
            .join(DimTime, FactRequest.time_key == DimTime.time_key)
            .join(DimDomain, FactRequest.domain_key == DimDomain.domain_key)
            .join(DimResourceType, FactRequest.resource_type_key == DimResourceType.resource_type_key)
            .where(FactRequest.request_id == request_id)
        )).all()

        if not rows:
            return []

        await session.execute(delete(FactRequest).where(FactRequest.request_id == request_id))
        logger.info("Retracted facts for re-ingested request", request_id=request_id, count=len(rows))
        return [FactScope(timestamp=r[0], domain=r[1], resource_type=r[2]) for r in rows]

    async def _is_compressed(self, session: AsyncSession, request_id: str) -> bool:
        encodings = (await session.scalars(
            select(BronzeRequestHeader.value).where(
                BronzeRequestHeader.request_id == request_id,
                BronzeRequestHeader.header_type == "response",
                func.lower(BronzeRequestHeader.name) == "content-encoding",
            )
        )).all()
        return any(
            token.strip() in COMPRESSED_ENCODINGS
            for value in encodings if value
            for token in value.lower().split(",")
        )

    async def build_fact(self, session: AsyncSession, record: SilverRequest, now: int) -> FactBuildResult:
        """
        Resolve dimension keys and insert the RequestFact of one Silver record.

        Args:
            session: Open database session
            record: Enriched record, already flushed
            now: Current time in epoch milliseconds

        Returns:
            FactBuildResult with the new fact key and any retracted scopes

        Raises:
            MalformedInputError: If the record has no domain
        """
        if not record.domain:
            raise MalformedInputError("Enriched record has no domain", {"request_id": record.id})

        retracted = await self.retract(session, record.id)

        time_key = await self.resolver.resolve_time(session, record.timestamp)
        attrs = self.classifier.classify(record.domain, record.is_third_party)
        transition = await self.resolver.resolve_domain(session, record.domain, attrs)
        resource_type_key = await self.resolver.resource_type_key(session, record.type)
        status_code_key = await self.resolver.status_code_key(session, record.status)

        metrics = await session.get(SilverRequestMetrics, record.id)

        fact = FactRequest(
            request_id=record.id,
            time_key=time_key,
            domain_key=transition.key,
            resource_type_key=resource_type_key,
            status_code_key=status_code_key,
            duration_ms=record.duration or 0,
            dns_time_ms=metrics.dns_time if metrics else 0,
            tcp_time_ms=metrics.tcp_time if metrics else 0,
            ssl_time_ms=metrics.ssl_time if metrics else 0,
            wait_time_ms=metrics.wait_time if metrics else 0,
            download_time_ms=metrics.download_time if metrics else 0,
            size_bytes=record.size_bytes or 0,
            is_cached=bool(record.from_cache),
            is_compressed=await self._is_compressed(session, record.id),
            performance_score=record.performance_score,
            quality_score=record.quality_score,
            has_error=bool(record.has_error),
            is_secure=bool(record.is_secure),
            created_at=now,
        )
        session.add(fact)
        await session.flush()

        resource_type = await session.scalar(
            select(DimResourceType.resource_type)
            .where(DimResourceType.resource_type_key == resource_type_key)
        )

        return FactBuildResult(
            request_fact_key=fact.request_fact_key,
            time_key=time_key,
            domain_transition=transition,
            scope=FactScope(timestamp=record.timestamp, domain=record.domain, resource_type=resource_type),
            retracted=retracted,
        )
