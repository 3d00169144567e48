"""
Unit Tests - Gold Summaries
"""
import pytest

from netpulse.analytics.gold import GoldSummarizer, performance_grade
from netpulse.ingestion.bronze_store import BronzeStore

from conftest import BASE_TS, HOUR_MS, FakeClock


class TestPerformanceGrade:
    """Tests for latency letter grades"""

    @pytest.mark.parametrize("avg,grade", [
        (0, "A"),
        (99.9, "A"),
        (100, "B"),
        (499, "B"),
        (500, "C"),
        (1999, "D"),
        (2000, "F"),
        (10_000, "F"),
    ])
    def test_thresholds(self, avg, grade):
        assert performance_grade(avg) == grade


class TestGoldSummarizer:
    """Tests for daily and per-domain rollups"""

    @pytest.fixture
    async def loaded(self, database):
        store = BronzeStore(database, FakeClock())
        requests = [
            ("a1", "https://a.example/", 100, 200, None),
            ("a2", "https://a.example/x", 300, 200, None),
            ("a3", "https://a.example/y", 500, 404, None),
            ("b1", "https://b.example/", 50, 200, None),
            ("b2", "https://b.example/z", None, None, "net::ERR_FAILED"),
            ("c1", "https://c.example/", 4000, 500, None),
        ]
        for i, (request_id, url, duration, status, error) in enumerate(requests):
            await store.insert_raw_request({
                "id": request_id,
                "url": url,
                "duration": duration,
                "status": status,
                "error": error,
                "sizeBytes": 1000,
                "timestamp": BASE_TS + i * HOUR_MS,
            })
        # next day, excluded
        await store.insert_raw_request({
            "id": "late", "url": "https://a.example/", "duration": 1, "timestamp": BASE_TS + 20 * HOUR_MS,
        })
        return GoldSummarizer(database, FakeClock())

    async def test_daily_analytics(self, loaded):
        row = await loaded.summarize_day("2024-03-04")

        assert row.total_requests == 6
        assert row.total_bytes == 6000
        assert row.avg_response_time == pytest.approx((100 + 300 + 500 + 50 + 4000) / 5)
        assert row.median_response_time == 300
        assert row.p95_response_time == 4000
        assert row.error_rate == pytest.approx(50.0)
        assert row.unique_domains == 3
        assert row.top_domains[0] == {"domain": "a.example", "count": 3}
        assert [d["domain"] for d in row.top_domains] == ["a.example", "b.example", "c.example"]

    async def test_resummarize_overwrites(self, loaded):
        first = await loaded.summarize_day("2024-03-04")
        second = await loaded.summarize_day("2024-03-04")

        assert second.total_requests == first.total_requests
        assert await loaded.get_daily("2024-03-04") is not None

    async def test_empty_day(self, loaded):
        row = await loaded.summarize_day("2024-01-01")

        assert row.total_requests == 0
        assert row.avg_response_time == 0.0
        assert row.error_rate == 0.0
        assert row.top_domains == []

    async def test_domain_performance(self, loaded):
        rows = await loaded.summarize_domains("2024-03-04")
        by_domain = {r.domain: r for r in rows}

        assert [r.domain for r in rows] == ["a.example", "b.example", "c.example"]
        assert by_domain["a.example"].avg_response_time == pytest.approx(300.0)
        assert by_domain["a.example"].performance_grade == "B"
        assert by_domain["a.example"].error_rate == pytest.approx(100 / 3)
        assert by_domain["b.example"].performance_grade == "A"
        assert by_domain["b.example"].error_rate == pytest.approx(50.0)
        assert by_domain["c.example"].performance_grade == "F"
        assert by_domain["c.example"].p95_response_time == 4000

    async def test_domain_rows_replaced(self, loaded):
        await loaded.summarize_domains("2024-03-04")
        await loaded.summarize_domains("2024-03-04")

        assert len(await loaded.get_domain_performance("2024-03-04")) == 3

    async def test_run_window(self, loaded):
        """Test the trailing window is newest first"""
        dates = await loaded.run(2)

        assert dates == ["2024-03-04", "2024-03-03"]
