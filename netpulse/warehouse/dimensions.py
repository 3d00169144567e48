"""
Dimension Resolver

Resolves the surrogate keys of the star schema:

- Time: lazily created, one row per distinct timestamp
- Domain: Slowly Changing Dimension Type 2 with classified attributes
- Resource type / status code: static reference rows seeded once
"""

import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable, Dict, List, Optional, Union

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.config.settings import PipelineSettings
from netpulse.database.models import DimDomain, DimResourceType, DimStatusCode, DimTime
from netpulse.warehouse.time_buckets import now_ms, time_attributes

logger = structlog.get_logger(__name__)


RESOURCE_TYPES = [
    # (type, category, cacheable, priority)
    ("document", "navigation", True, 1),
    ("stylesheet", "asset", True, 2),
    ("script", "asset", True, 2),
    ("image", "media", True, 3),
    ("font", "asset", True, 3),
    ("xmlhttprequest", "api", False, 1),
    ("fetch", "api", False, 1),
    ("websocket", "realtime", False, 1),
    ("media", "media", True, 4),
    ("other", "other", False, 5),
]

FALLBACK_RESOURCE_TYPE = "other"


class DomainCategory:
    ANALYTICS = "analytics"
    ADVERTISING = "advertising"
    SOCIAL = "social"
    CDN = "cdn"
    API = "api"
    FIRST_PARTY = "first_party"
    OTHER = "other"


CATEGORY_KEYWORDS = {
    DomainCategory.ADVERTISING: [
        "doubleclick", "adservice", "ads", "adnxs", "criteo", "taboola", "outbrain", "adsystem",
    ],
    DomainCategory.ANALYTICS: [
        "analytics", "googletagmanager", "segment", "mixpanel", "hotjar", "amplitude", "matomo",
    ],
    DomainCategory.SOCIAL: [
        "facebook", "twitter", "linkedin", "instagram", "tiktok", "pinterest", "reddit",
    ],
}

TRACKING_CATEGORIES = {DomainCategory.ADVERTISING, DomainCategory.ANALYTICS}


# =============================================================================
# DOMAIN CLASSIFICATION
# =============================================================================

@dataclass(frozen=True)
class DomainAttributes:
    """Monitored attributes of a domain dimension version."""
    is_third_party: bool = False
    is_cdn: bool = False
    category: str = DomainCategory.OTHER
    risk_level: str = "low"

    def differs_from(self, row: DimDomain) -> bool:
        """True when a monitored attribute changed against the stored version."""
        return (
            self.is_third_party != bool(row.is_third_party)
            or self.category != row.category
            or self.risk_level != row.risk_level
        )


class DomainClassifier:
    """
    Derives domain dimension attributes from a hostname.

    Deterministic: the same hostname and configuration always yield the same
    attributes, so a new dimension version only appears when the inputs change.

    Example:
        classifier = DomainClassifier(settings.pipeline)
        attrs = classifier.classify("www.google-analytics.com", is_third_party=True)
        # DomainAttributes(is_third_party=True, is_cdn=False, category="analytics", risk_level="high")
    """

    def __init__(self, settings: PipelineSettings):
        self.cdn_markers = [m.lower() for m in settings.cdn_markers]

    @staticmethod
    def _tokens(hostname: str) -> List[str]:
        return [t for t in re.split(r"[.\-]", hostname) if t]

    def is_cdn(self, hostname: str) -> bool:
        host = hostname.lower()
        return any(marker in host for marker in self.cdn_markers)

    def category(self, hostname: str, is_third_party: bool) -> str:
        host = hostname.lower()
        tokens = self._tokens(host)

        for category, keywords in CATEGORY_KEYWORDS.items():
            if any(keyword in tokens for keyword in keywords):
                return category
        if self.is_cdn(host):
            return DomainCategory.CDN
        if tokens and tokens[0] == "api":
            return DomainCategory.API
        return DomainCategory.OTHER if is_third_party else DomainCategory.FIRST_PARTY

    def classify(self, hostname: str, is_third_party: bool) -> DomainAttributes:
        category = self.category(hostname, is_third_party)
        if category in TRACKING_CATEGORIES:
            risk = "high"
        elif is_third_party:
            risk = "medium"
        else:
            risk = "low"

        return DomainAttributes(
            is_third_party=is_third_party,
            is_cdn=self.is_cdn(hostname),
            category=category,
            risk_level=risk,
        )


# =============================================================================
# SCD TYPE 2 TRANSITIONS
# =============================================================================

@dataclass(frozen=True)
class Created:
    """First version of a domain was inserted."""
    key: int


@dataclass(frozen=True)
class Unchanged:
    """The current version still matches; no write happened."""
    key: int


@dataclass(frozen=True)
class Versioned:
    """The current version was closed and a new one inserted."""
    closed_key: int
    key: int


DomainTransition = Union[Created, Unchanged, Versioned]


# =============================================================================
# RESOLVER
# =============================================================================

class DimensionResolver:
    """
    Looks up or creates dimension keys inside the caller's session.

    Reference keys (resource type, status code) are cached after the first
    lookup since those tables are static after seeding.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock
        self._resource_keys: Dict[str, int] = {}
        self._status_keys: Dict[int, Optional[int]] = {}

    async def resolve_time(self, session: AsyncSession, timestamp_ms: int) -> int:
        """
        Get or create the time dimension row for an exact timestamp.

        Args:
            session: Open database session
            timestamp_ms: Epoch milliseconds

        Returns:
            time_key of the row
        """
        ts = int(timestamp_ms)
        existing = await session.scalar(select(DimTime.time_key).where(DimTime.timestamp == ts))
        if existing is not None:
            return existing

        row = DimTime(**time_attributes(ts).as_row())
        session.add(row)
        await session.flush()
        return row.time_key

    async def resolve_domain(
        self,
        session: AsyncSession,
        domain: str,
        attrs: DomainAttributes,
    ) -> DomainTransition:
        """
        Resolve the current domain dimension key, versioning on change.

        Close-then-insert runs in a savepoint so a failure leaves the previous
        current version intact.

        Args:
            session: Open database session
            domain: Hostname
            attrs: Attributes observed now

        Returns:
            Created, Unchanged or Versioned transition
        """
        current = await session.scalar(
            select(DimDomain).where(DimDomain.domain == domain, DimDomain.is_current.is_(True))
        )

        if current is not None and not attrs.differs_from(current):
            return Unchanged(key=current.domain_key)

        now = self.clock()
        if current is not None:
            # intervals must stay contiguous even if the wall clock steps back
            now = max(now, current.valid_from)
        async with session.begin_nested():
            if current is None:
                version = 1
            else:
                await session.execute(
                    update(DimDomain)
                    .where(DimDomain.domain_key == current.domain_key)
                    .values(is_current=False, valid_to=now, updated_at=now)
                )
                max_version = await session.scalar(
                    select(func.max(DimDomain.version)).where(DimDomain.domain == domain)
                )
                version = (max_version or 0) + 1

            row = DimDomain(
                domain=domain,
                is_third_party=attrs.is_third_party,
                is_cdn=attrs.is_cdn,
                category=attrs.category,
                risk_level=attrs.risk_level,
                valid_from=now,
                valid_to=None,
                is_current=True,
                version=version,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()

        if current is None:
            logger.debug("Domain dimension created", domain=domain, domain_key=row.domain_key)
            return Created(key=row.domain_key)

        logger.info(
            "Domain dimension versioned",
            domain=domain,
            closed_key=current.domain_key,
            domain_key=row.domain_key,
            version=version,
        )
        return Versioned(closed_key=current.domain_key, key=row.domain_key)

    async def resource_type_key(self, session: AsyncSession, resource_type: Optional[str]) -> int:
        """Key of a resource type; unknown or missing types map to 'other'."""
        name = (resource_type or FALLBACK_RESOURCE_TYPE).lower()
        if name in self._resource_keys:
            return self._resource_keys[name]

        key = await session.scalar(
            select(DimResourceType.resource_type_key).where(DimResourceType.resource_type == name)
        )
        if key is None:
            if name == FALLBACK_RESOURCE_TYPE:
                raise RuntimeError("Reference dimensions not seeded")
            return await self.resource_type_key(session, FALLBACK_RESOURCE_TYPE)

        self._resource_keys[name] = key
        return key

    async def status_code_key(self, session: AsyncSession, status_code: Optional[int]) -> Optional[int]:
        """Key of a status code, or None for non-standard codes."""
        code = int(status_code or 0)
        if code not in self._status_keys:
            self._status_keys[code] = await session.scalar(
                select(DimStatusCode.status_code_key).where(DimStatusCode.status_code == code)
            )
        return self._status_keys[code]

    async def seed_reference_dimensions(self, session: AsyncSession) -> None:
        """Insert resource type and status code rows that are not present yet."""
        added = 0
        existing_types = set((await session.scalars(select(DimResourceType.resource_type))).all())
        for name, category, cacheable, priority in RESOURCE_TYPES:
            if name not in existing_types:
                added += 1
                session.add(DimResourceType(
                    resource_type=name,
                    category=category,
                    is_cacheable=cacheable,
                    priority=priority,
                ))

        existing_codes = set((await session.scalars(select(DimStatusCode.status_code))).all())
        for row in status_code_rows():
            if row["status_code"] not in existing_codes:
                added += 1
                session.add(DimStatusCode(**row))

        await session.flush()
        if added:
            logger.info("Reference dimensions seeded", rows_added=added)


def status_code_rows() -> List[dict]:
    """Reference rows for every standard HTTP status plus 0 (no response)."""
    rows = [{
        "status_code": 0,
        "status_category": "0xx",
        "status_text": "No Response",
        "is_success": False,
        "is_error": True,
        "is_redirect": False,
        "description": "Request failed before a response was received",
    }]
    for status in HTTPStatus:
        code = status.value
        rows.append({
            "status_code": code,
            "status_category": f"{code // 100}xx",
            "status_text": status.phrase,
            "is_success": 200 <= code < 300,
            "is_error": code >= 400,
            "is_redirect": 300 <= code < 400,
            "description": status.description,
        })
    return rows
