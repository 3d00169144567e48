"""
Unit Tests - Bronze Ingestion
"""
import pytest
from sqlalchemy import select

from netpulse.database.models import BronzeRequest, BronzeRequestHeader, BronzeRequestTiming
from netpulse.ingestion.bronze_store import BronzeStore, RawRequestEvent, RawTimings

from conftest import BASE_TS, FakeClock


class TestRawRequestEvent:
    """Tests for lenient payload coercion"""

    def test_camel_case_payload(self, make_event):
        event = RawRequestEvent.model_validate(make_event(id="r1", url="https://example.com/a/b?x=1"))

        assert event.id == "r1"
        assert event.status_text == "OK"
        assert event.size_bytes == 2048
        assert event.tab_id == 7
        assert event.domain == "example.com"
        assert event.path == "/a/b"
        assert event.query_string == "x=1"
        assert event.protocol == "https:"

    def test_unusable_fields_become_defaults(self):
        """Test garbage values are dropped instead of failing the record"""
        event = RawRequestEvent.model_validate({
            "id": 12,
            "status": "n/a",
            "duration": "slow",
            "sizeBytes": -5,
            "method": None,
            "type": "Script",
            "fromCache": "true",
        })

        assert event.id == "12"
        assert event.status is None
        assert event.duration is None
        assert event.size_bytes == 0
        assert event.method == "GET"
        assert event.type == "script"
        assert event.from_cache is True

    def test_numeric_strings_are_coerced(self):
        event = RawRequestEvent.model_validate({"id": "r", "status": "404", "duration": "12.5"})

        assert event.status == 404
        assert event.duration == 12.5

    def test_explicit_domain_kept(self):
        event = RawRequestEvent.model_validate({
            "id": "r", "url": "https://example.com/", "domain": "override.test", "protocol": "h2:",
        })

        assert event.domain == "override.test"
        assert event.protocol == "h2:"

    def test_timings_default_to_zero(self):
        timings = RawTimings.model_validate({"dnsDuration": "4", "tcpDuration": None, "sslDuration": "x"})

        assert timings.dns_duration == 4.0
        assert timings.tcp_duration == 0.0
        assert timings.ssl_duration == 0.0
        assert timings.response_end == 0.0


class TestBronzeStore:
    """Tests for BronzeStore writes"""

    @pytest.fixture
    def store(self, database):
        return BronzeStore(database, FakeClock())

    async def test_insert_and_replace(self, store, database, make_event):
        """Test re-inserting an id replaces the row"""
        assert await store.insert_raw_request(make_event(id="r1", status=200)) == "r1"
        assert await store.insert_raw_request(make_event(id="r1", status=500)) == "r1"

        async with database.session() as session:
            rows = (await session.scalars(select(BronzeRequest))).all()
        assert len(rows) == 1
        assert rows[0].status == 500

    async def test_missing_id_rejected(self, store):
        assert await store.insert_raw_request({"url": "https://example.com/"}) is None

    async def test_missing_timestamp_uses_clock(self, store, database):
        await store.insert_raw_request({"id": "r2", "url": "https://example.com/"})

        async with database.session() as session:
            row = await session.get(BronzeRequest, "r2")
        assert row.timestamp == store.clock()

    async def test_headers_mapping_and_list(self, store, database):
        await store.insert_raw_request({"id": "r3", "url": "https://example.com/", "timestamp": BASE_TS})

        written = await store.insert_headers("r3", {"Accept": "*/*", "X-Count": 3})
        written += await store.insert_headers(
            "r3",
            [{"name": "content-encoding", "value": "gzip"}, {"value": "nameless"}],
            header_type="response",
        )

        assert written == 3
        async with database.session() as session:
            headers = (await session.scalars(
                select(BronzeRequestHeader).order_by(BronzeRequestHeader.header_id)
            )).all()
        assert [(h.header_type, h.name, h.value) for h in headers] == [
            ("request", "Accept", "*/*"),
            ("request", "X-Count", "3"),
            ("response", "content-encoding", "gzip"),
        ]

    async def test_empty_headers(self, store):
        assert await store.insert_headers("r4", {}) == 0

    async def test_timings_upsert(self, store, database):
        await store.insert_raw_request({"id": "r5", "url": "https://example.com/", "timestamp": BASE_TS})

        assert await store.insert_timings("r5", {"dnsDuration": 3}) is True
        assert await store.insert_timings("r5", {"dnsDuration": 9, "responseDuration": 20}) is True

        async with database.session() as session:
            timings = (await session.scalars(select(BronzeRequestTiming))).all()
        assert len(timings) == 1
        assert timings[0].dns_duration == 9
        assert timings[0].response_duration == 20
