"""
Unit Tests - Warehouse Dimensions
"""
import pytest
from sqlalchemy import func, inspect, select

from netpulse.config.settings import PipelineSettings
from netpulse.database.models import DimDomain, DimResourceType, DimStatusCode, DimTime
from netpulse.warehouse.dimensions import (
    Created,
    DimensionResolver,
    DomainAttributes,
    DomainCategory,
    DomainClassifier,
    Unchanged,
    Versioned,
)

from conftest import BASE_TS, FakeClock


@pytest.fixture
def classifier():
    return DomainClassifier(PipelineSettings())


class TestDomainClassifier:
    """Tests for domain attribute derivation"""

    def test_first_party(self, classifier):
        attrs = classifier.classify("example.com", is_third_party=False)

        assert attrs == DomainAttributes(
            is_third_party=False,
            is_cdn=False,
            category=DomainCategory.FIRST_PARTY,
            risk_level="low",
        )

    def test_analytics_is_high_risk(self, classifier):
        attrs = classifier.classify("www.google-analytics.com", is_third_party=True)

        assert attrs.category == DomainCategory.ANALYTICS
        assert attrs.risk_level == "high"

    def test_advertising(self, classifier):
        attrs = classifier.classify("ad.doubleclick.net", is_third_party=True)

        assert attrs.category == DomainCategory.ADVERTISING
        assert attrs.risk_level == "high"

    def test_cdn(self, classifier):
        attrs = classifier.classify("cdn.jsdelivr.net", is_third_party=True)

        assert attrs.is_cdn is True
        assert attrs.category == DomainCategory.CDN
        assert attrs.risk_level == "medium"

    def test_api_subdomain(self, classifier):
        assert classifier.category("api.example.com", is_third_party=False) == DomainCategory.API

    def test_keywords_match_whole_tokens(self, classifier):
        """Test 'ads' inside another word does not mark advertising"""
        assert classifier.category("roads.example.com", is_third_party=False) == DomainCategory.FIRST_PARTY

    def test_unmatched_third_party(self, classifier):
        attrs = classifier.classify("widgets.vendor.io", is_third_party=True)

        assert attrs.category == DomainCategory.OTHER
        assert attrs.risk_level == "medium"

    def test_deterministic(self, classifier):
        assert classifier.classify("x.facebook.com", True) == classifier.classify("x.facebook.com", True)


def _attrs(third_party: bool = False, category: str = DomainCategory.FIRST_PARTY) -> DomainAttributes:
    return DomainAttributes(
        is_third_party=third_party,
        is_cdn=False,
        category=category,
        risk_level="medium" if third_party else "low",
    )


async def _versions(session, domain):
    return (await session.execute(
        select(
            DimDomain.domain_key,
            DimDomain.version,
            DimDomain.is_current,
            DimDomain.valid_from,
            DimDomain.valid_to,
        )
        .where(DimDomain.domain == domain)
        .order_by(DimDomain.version)
    )).all()


class TestDomainVersioning:
    """Tests for slowly changing domain dimension rows"""

    async def test_first_sighting_creates(self, session):
        clock = FakeClock()
        resolver = DimensionResolver(clock)

        transition = await resolver.resolve_domain(session, "example.com", _attrs())

        assert isinstance(transition, Created)
        rows = await _versions(session, "example.com")
        assert len(rows) == 1
        assert rows[0].version == 1
        assert rows[0].is_current is True
        assert rows[0].valid_from == clock.now
        assert rows[0].valid_to is None

    async def test_same_attributes_unchanged(self, session):
        resolver = DimensionResolver(FakeClock())

        created = await resolver.resolve_domain(session, "example.com", _attrs())
        again = await resolver.resolve_domain(session, "example.com", _attrs())

        assert again == Unchanged(key=created.key)
        assert len(await _versions(session, "example.com")) == 1

    async def test_changed_attributes_version(self, session):
        """Test the old version is closed where the new one starts"""
        clock = FakeClock()
        resolver = DimensionResolver(clock)

        created = await resolver.resolve_domain(session, "example.com", _attrs())
        clock.advance(60_000)
        versioned = await resolver.resolve_domain(
            session, "example.com", _attrs(True, DomainCategory.OTHER)
        )

        assert isinstance(versioned, Versioned)
        assert versioned.closed_key == created.key
        assert versioned.key != created.key

        old, new = await _versions(session, "example.com")
        assert old.is_current is False
        assert old.valid_to == clock.now
        assert new.is_current is True
        assert new.valid_from == old.valid_to
        assert new.version == 2

    async def test_exactly_one_current_version(self, session):
        clock = FakeClock()
        resolver = DimensionResolver(clock)

        for third_party in (False, True, False, True):
            clock.advance(1000)
            await resolver.resolve_domain(
                session,
                "flip.example.com",
                _attrs(third_party, DomainCategory.OTHER if third_party else DomainCategory.FIRST_PARTY),
            )

        rows = await _versions(session, "flip.example.com")
        assert [r.version for r in rows] == [1, 2, 3, 4]
        assert sum(1 for r in rows if r.is_current) == 1
        for earlier, later in zip(rows, rows[1:]):
            assert earlier.valid_to == later.valid_from

    async def test_clock_going_backwards_keeps_intervals_ordered(self, session):
        clock = FakeClock()
        resolver = DimensionResolver(clock)

        await resolver.resolve_domain(session, "example.com", _attrs())
        first_from = clock.now
        clock.advance(-10_000)
        await resolver.resolve_domain(session, "example.com", _attrs(True, DomainCategory.OTHER))

        old, new = await _versions(session, "example.com")
        assert old.valid_to == first_from
        assert new.valid_from >= old.valid_from


class TestReferenceDimensions:
    """Tests for time, resource type and status code lookups"""

    async def test_time_row_reused(self, session):
        resolver = DimensionResolver()

        first = await resolver.resolve_time(session, BASE_TS)
        second = await resolver.resolve_time(session, BASE_TS)

        assert first == second
        count = await session.scalar(select(func.count()).select_from(DimTime))
        assert count == 1

    async def test_unknown_resource_type_maps_to_other(self, session):
        resolver = DimensionResolver()

        assert await resolver.resource_type_key(session, "beacon") == await resolver.resource_type_key(
            session, "other"
        )
        assert await resolver.resource_type_key(session, None) == await resolver.resource_type_key(
            session, "other"
        )
        assert await resolver.resource_type_key(session, "script") != await resolver.resource_type_key(
            session, "other"
        )

    async def test_status_codes(self, session):
        resolver = DimensionResolver()

        assert await resolver.status_code_key(session, 200) is not None
        assert await resolver.status_code_key(session, 0) is not None
        assert await resolver.status_code_key(session, 799) is None

        no_response = await session.scalar(select(DimStatusCode).where(DimStatusCode.status_code == 0))
        assert no_response.is_error is True
        not_found = await session.scalar(select(DimStatusCode).where(DimStatusCode.status_code == 404))
        assert not_found.status_category == "4xx"
        assert not_found.is_error is True

    async def test_seeding_is_idempotent(self, session):
        before = await session.scalar(select(func.count()).select_from(DimResourceType))

        await DimensionResolver().seed_reference_dimensions(session)

        after = await session.scalar(select(func.count()).select_from(DimResourceType))
        assert before == after == 10

    async def test_every_period_column_indexed(self, session):
        indexes = await session.run_sync(lambda s: inspect(s.connection()).get_indexes("dim_time"))

        indexed = {column for index in indexes for column in index["column_names"]}
        assert indexed >= {
            "period_1min", "period_5min", "period_15min", "period_30min", "period_1h", "period_4h", "period_1d",
        }
