"""
Integration Tests - Medallion Pipeline

Drives raw capture records through Bronze, Silver, the star schema and the
downstream aggregations on a real SQLite file.
"""
import asyncio

import pytest
from sqlalchemy import func, select

from netpulse.config.settings import PipelineSettings
from netpulse.database.models import (
    DimDomain,
    DimTime,
    FactOHLCPerformance,
    FactRequest,
    PipelineReadyEvent,
    SilverRequest,
    SilverRequestMetrics,
)
from netpulse.errors import MalformedInputError, NotFoundError
from netpulse.pipeline import MedallionPipeline

from conftest import BASE_TS, HOUR_MS, FakeClock


async def _count(pipeline, model, *where):
    async with pipeline.database.session() as session:
        return await session.scalar(select(func.count()).select_from(model).where(*where))


async def _ingest(pipeline, events):
    for event in events:
        assert await pipeline.insert_raw_request(event) == event["id"]
    await pipeline.drain()


@pytest.fixture
def three_requests(make_event):
    return [
        make_event(url="https://example.com/fast.js", type="script", duration=50),
        make_event(url="https://example.com/medium.css", type="stylesheet", duration=1500),
        make_event(url="https://example.com/slow.png", type="image", duration=6000),
    ]


class TestEnrichment:
    """Tests for Bronze -> Silver -> fact"""

    async def test_domain_stats_and_scores(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        stats = await pipeline.get_domain_stats("example.com")
        assert stats.total_requests == 3
        assert stats.avg_duration == pytest.approx(2516.67, abs=0.01)
        assert stats.min_duration == 50
        assert stats.max_duration == 6000
        assert stats.success_count == 3
        assert stats.error_count == 0

        async with pipeline.database.session() as session:
            scores = (await session.scalars(
                select(SilverRequest.performance_score).order_by(SilverRequest.timestamp)
            )).all()
        assert scores == [99, 70, 0]

        script = await pipeline.get_resource_stats("script")
        assert script.total_requests == 1
        assert script.avg_size == 2048

    async def test_one_fact_per_request(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        assert await _count(pipeline, FactRequest) == 3
        assert await _count(pipeline, PipelineReadyEvent) == 3

    async def test_reingest_replaces_fact(self, pipeline, three_requests, make_event):
        """Test re-ingesting an id retracts its previous fact"""
        await _ingest(pipeline, three_requests)
        await _ingest(pipeline, [make_event(id=three_requests[0]["id"], duration=100)])

        assert await _count(pipeline, FactRequest) == 3
        assert await _count(pipeline, FactRequest, FactRequest.request_id == three_requests[0]["id"]) == 1
        assert await _count(pipeline, PipelineReadyEvent, PipelineReadyEvent.is_retraction.is_(True)) == 1

        async with pipeline.database.session() as session:
            duration = await session.scalar(
                select(FactRequest.duration_ms).where(FactRequest.request_id == three_requests[0]["id"])
            )
        assert duration == 100

    async def test_malformed_request_skipped(self, pipeline, make_event):
        """Test a request that cannot be enriched stays in Bronze only"""
        await _ingest(pipeline, [
            make_event(id="bad", url="not a url"),
            make_event(id="no-url", url=None),
            make_event(id="good"),
        ])

        assert await _count(pipeline, SilverRequest) == 1
        assert await _count(pipeline, FactRequest, FactRequest.request_id == "bad") == 0
        assert await pipeline.get_domain_stats("example.com") is not None

    async def test_malformed_reingest_withdraws_enrichment(self, pipeline, make_event):
        """Test re-ingesting an id with an unusable URL removes its Silver row and fact"""
        event = make_event(id="flip")
        await _ingest(pipeline, [event])
        await pipeline.insert_timings("flip", {"requestDuration": 30, "responseDuration": 20})
        await pipeline.drain()
        assert await _count(pipeline, FactRequest, FactRequest.request_id == "flip") == 1
        assert await _count(pipeline, SilverRequestMetrics, SilverRequestMetrics.request_id == "flip") == 1
        retractions = await _count(pipeline, PipelineReadyEvent, PipelineReadyEvent.is_retraction.is_(True))

        await _ingest(pipeline, [make_event(id="flip", url=None)])

        assert await _count(pipeline, SilverRequest, SilverRequest.id == "flip") == 0
        assert await _count(pipeline, SilverRequestMetrics, SilverRequestMetrics.request_id == "flip") == 0
        assert await _count(pipeline, FactRequest, FactRequest.request_id == "flip") == 0
        assert await _count(pipeline, PipelineReadyEvent, PipelineReadyEvent.is_retraction.is_(True)) == retractions + 1
        assert await pipeline.get_domain_stats("example.com") is None

    async def test_malformed_reingest_still_raises(self, pipeline, make_event):
        await _ingest(pipeline, [make_event(id="flip")])
        await pipeline.insert_raw_request(make_event(id="flip", url="not a url"))

        with pytest.raises(MalformedInputError):
            await pipeline.engine.enrich("flip")
        await pipeline.drain()

        assert await _count(pipeline, SilverRequest) == 0

    async def test_timings_become_metrics(self, pipeline, make_event):
        event = make_event(id="timed")
        await pipeline.insert_raw_request(event)
        await pipeline.insert_timings("timed", {"dnsDuration": 5, "requestDuration": 30, "responseDuration": 20})
        await pipeline.drain()

        async with pipeline.database.session() as session:
            metrics = await session.get(SilverRequestMetrics, "timed")
            fact = await session.scalar(select(FactRequest).where(FactRequest.request_id == "timed"))
        assert metrics.total_time == 50
        assert metrics.wait_time == 30
        assert metrics.download_time == 20
        assert fact.dns_time_ms == 5

    async def test_response_encoding_marks_compressed(self, pipeline, make_event):
        await pipeline.insert_raw_request(make_event(id="gz"))
        await pipeline.insert_headers("gz", {"Content-Encoding": "gzip"}, header_type="response")
        await pipeline.drain()

        async with pipeline.database.session() as session:
            fact = await session.scalar(select(FactRequest).where(FactRequest.request_id == "gz"))
        assert fact.is_compressed is True

    async def test_enrich_pending(self, pipeline, make_event):
        """Test raw rows stored without queueing are picked up"""
        await pipeline.bronze.insert_raw_request(make_event(id="orphan"))

        assert await pipeline.enrich_pending() == 1
        assert await _count(pipeline, SilverRequest) == 1
        assert await pipeline.enrich_pending() == 0

    async def test_domain_reclassified_after_settings_change(self, pipeline, test_settings, make_event):
        """Test a changed classification opens a new domain version"""
        await _ingest(pipeline, [make_event(id="v1")])
        await pipeline.close()

        changed = test_settings.model_copy(
            update={"pipeline": PipelineSettings(third_party_markers=["example"])}
        )
        async with MedallionPipeline(changed, clock=FakeClock(BASE_TS + 13 * HOUR_MS)) as reclassified:
            await _ingest(reclassified, [make_event(id="v2")])

            async with reclassified.database.session() as session:
                versions = (await session.execute(
                    select(DimDomain.version, DimDomain.is_current, DimDomain.is_third_party)
                    .where(DimDomain.domain == "example.com")
                    .order_by(DimDomain.version)
                )).all()
            assert [(v.version, v.is_current, v.is_third_party) for v in versions] == [
                (1, False, False),
                (2, True, True),
            ]

            # a domain scope spans every version
            candles = await reclassified.get_ohlc(
                "1h", BASE_TS, BASE_TS + HOUR_MS - 1, domain="example.com", refresh=True
            )
            assert candles[0].request_count == 2


class TestConcurrentWriters:
    """Tests for enrichment and aggregation sharing one SQLite file"""

    async def test_burst_ingest_then_drain(self, pipeline, make_event):
        events = [make_event() for _ in range(60)]
        for event in events:
            assert await pipeline.insert_raw_request(event) == event["id"]
        await pipeline.drain()

        assert await _count(pipeline, SilverRequest) == 60
        assert await _count(pipeline, FactRequest) == 60
        assert (await pipeline.get_domain_stats("example.com")).total_requests == 60

    async def test_tick_during_ingest(self, pipeline, make_event):
        events = [make_event() for _ in range(40)]

        async def ingest():
            for event in events:
                await pipeline.insert_raw_request(event)
                await asyncio.sleep(0)

        async def tick():
            for _ in range(5):
                await pipeline.run_aggregation_tick()
                await asyncio.sleep(0)

        await asyncio.gather(ingest(), tick())
        await pipeline.drain()
        await pipeline.run_aggregation_tick()

        assert await _count(pipeline, SilverRequest) == 40
        assert await _count(pipeline, FactRequest) == 40
        candles = await pipeline.get_ohlc("1h", BASE_TS, BASE_TS + HOUR_MS - 1)
        assert [c.request_count for c in candles] == [40]


class TestAggregation:
    """Tests for the outbox-driven downstream aggregation"""

    async def test_tick_builds_candles(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        result = await pipeline.run_aggregation_tick()

        assert result.events == 3
        assert result.gold_days == ["2024-03-04"]
        assert await pipeline.outbox.pending_count() == 0

        candles = await pipeline.get_ohlc("1h", BASE_TS, BASE_TS + HOUR_MS - 1)
        assert len(candles) == 1
        candle = candles[0]
        assert candle.period_start == BASE_TS
        assert (candle.open_time, candle.high_time, candle.low_time, candle.close_time) == (50, 6000, 50, 6000)
        assert candle.request_count == 3
        assert candle.total_bytes == 3 * 2048
        assert candle.median_response_time == 1500
        assert candle.error_rate == 0.0
        assert candle.avg_performance_score == pytest.approx(169 / 3)

        scoped = await pipeline.get_ohlc("1h", BASE_TS, BASE_TS + HOUR_MS - 1, resource_type="script")
        assert scoped[0].request_count == 1

        assert (await pipeline.run_aggregation_tick()).events == 0

    async def test_generate_is_idempotent(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        first = await pipeline.get_ohlc("5min", BASE_TS, BASE_TS + HOUR_MS, refresh=True)
        second = await pipeline.get_ohlc("5min", BASE_TS, BASE_TS + HOUR_MS, refresh=True)

        assert first == second
        assert await _count(
            pipeline,
            FactOHLCPerformance,
            FactOHLCPerformance.period_type == "5min",
            FactOHLCPerformance.domain.is_(None),
            FactOHLCPerformance.resource_type.is_(None),
        ) == 1

    async def test_daily_gold_from_tick(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)
        await pipeline.run_aggregation_tick()

        daily = await pipeline.get_daily_analytics("2024-03-04")
        assert daily.total_requests == 3
        assert daily.unique_domains == 1

        domains = await pipeline.get_domain_performance("2024-03-04")
        assert [(d.domain, d.performance_grade) for d in domains] == [("example.com", "F")]


class TestQuality:
    """Tests for quality slices"""

    async def _time_key(self, pipeline, timestamp):
        async with pipeline.database.session() as session:
            return await session.scalar(select(DimTime.time_key).where(DimTime.timestamp == timestamp))

    async def test_quality_of_hour(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)
        time_key = await self._time_key(pipeline, three_requests[0]["timestamp"])

        report = await pipeline.get_quality_metrics(time_key)

        assert report.period_start == BASE_TS
        assert report.total_requests == 3
        assert report.availability_rate == 100.0
        assert report.security_score == 100.0
        assert report.performance_index == pytest.approx(169 / 3)
        assert report.reliability_score == 0.0
        assert report.requests_under_100ms == 1
        assert report.requests_under_3s == 1
        assert report.requests_over_3s == 1
        assert report.cache_hit_rate == 0.0

    async def test_quality_by_domain_key(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)
        time_key = await self._time_key(pipeline, three_requests[0]["timestamp"])
        async with pipeline.database.session() as session:
            domain_key = await session.scalar(select(DimDomain.domain_key).where(DimDomain.domain == "example.com"))

        report = await pipeline.get_quality_metrics(time_key, domain_key)

        assert report.domain == "example.com"
        assert report.total_requests == 3

    async def test_unknown_keys(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)
        time_key = await self._time_key(pipeline, three_requests[0]["timestamp"])

        with pytest.raises(NotFoundError):
            await pipeline.get_quality_metrics(999_999)
        with pytest.raises(NotFoundError):
            await pipeline.get_quality_metrics(time_key, domain_key=999_999)


class TestRetention:
    """Tests for purging raw telemetry"""

    async def test_purge_removes_derived_rows(self, pipeline, three_requests, make_event):
        late = make_event(id="late", timestamp=BASE_TS + 2 * HOUR_MS, duration=200)
        await _ingest(pipeline, [three_requests[0], three_requests[1], late])
        await pipeline.run_aggregation_tick()

        result = await pipeline.purge_before(BASE_TS + HOUR_MS)

        assert result.requests_deleted == 2
        assert result.deleted["fact_requests"] == 2
        assert result.deleted["silver_requests"] == 2
        assert await _count(pipeline, SilverRequest) == 1

        stats = await pipeline.get_domain_stats("example.com")
        assert stats.total_requests == 1
        assert stats.avg_duration == 200

        # summaries are retained
        assert (await pipeline.get_daily_analytics("2024-03-04")).total_requests == 3
        assert len(await pipeline.get_ohlc("1h", BASE_TS, BASE_TS + HOUR_MS - 1)) == 1

    async def test_purge_everything_drops_stats(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        await pipeline.purge_before(BASE_TS + HOUR_MS)

        assert await pipeline.get_domain_stats("example.com") is None
        assert await pipeline.get_resource_stats("script") is None
        # regenerating over purged facts deletes the stale candle
        assert await pipeline.get_ohlc("1h", BASE_TS, BASE_TS + HOUR_MS - 1, refresh=True) == []

    async def test_purge_nothing(self, pipeline):
        result = await pipeline.purge_before(BASE_TS)

        assert result.requests_deleted == 0
        assert result.deleted == {}

    async def test_retention_policy_window(self, pipeline, three_requests):
        """Test the default window keeps recent rows and a zero-day window purges them"""
        await _ingest(pipeline, three_requests)

        kept = await pipeline.retention.purge_by_retention_policy()
        purged = await pipeline.retention.purge_by_retention_policy(retention_days=0)

        assert kept.requests_deleted == 0
        assert purged.requests_deleted == 3


class TestGoldJob:
    """Tests for the trailing Gold window"""

    async def test_run_gold_today(self, pipeline, three_requests):
        await _ingest(pipeline, three_requests)

        assert await pipeline.run_gold(1) == ["2024-03-04"]
        assert (await pipeline.get_daily_analytics("2024-03-04")).total_requests == 3
