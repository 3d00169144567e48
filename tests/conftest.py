"""
Test Suite Configuration
"""
from typing import AsyncGenerator, Callable, Dict, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.config.settings import DatabaseSettings, MonitoringSettings, Settings
from netpulse.database.connection import Database
from netpulse.pipeline import MedallionPipeline
from netpulse.warehouse.dimensions import DimensionResolver

# 2024-03-04 10:00:00 UTC, a Monday
BASE_TS = 1_709_546_400_000
HOUR_MS = 3_600_000
MINUTE_MS = 60_000


class FakeClock:
    """Controllable millisecond clock"""

    def __init__(self, start: int = BASE_TS + 12 * HOUR_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings backed by a throwaway database file"""
    return Settings(
        app_env="testing",
        database=DatabaseSettings(path=str(tmp_path / "netpulse.db")),
        monitoring=MonitoringSettings(log_format="text"),
    )


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Connected database with the schema created and reference rows seeded"""
    db = Database(test_settings.database)
    await db.connect()
    async with db.session() as session:
        await DimensionResolver().seed_reference_dimensions(session)
    yield db
    await db.close()


@pytest.fixture
async def session(database) -> AsyncGenerator[AsyncSession, None]:
    """Transactional session, committed on exit"""
    async with database.session() as s:
        yield s


@pytest.fixture
async def pipeline(test_settings, clock) -> AsyncGenerator[MedallionPipeline, None]:
    """Started pipeline on a fresh database"""
    async with MedallionPipeline(test_settings, clock=clock) as p:
        yield p


@pytest.fixture
def make_event() -> Callable[..., Dict[str, Any]]:
    """Factory for raw capture payloads as the browser side sends them"""
    counter = {"n": 0}

    def _make(**overrides) -> Dict[str, Any]:
        counter["n"] += 1
        event = {
            "id": f"req-{counter['n']}",
            "url": "https://example.com/index.html",
            "method": "GET",
            "type": "document",
            "status": 200,
            "statusText": "OK",
            "duration": 120.0,
            "sizeBytes": 2048,
            "timestamp": BASE_TS + counter["n"] * 1000,
            "tabId": 7,
            "fromCache": False,
        }
        event.update(overrides)
        return event

    return _make
