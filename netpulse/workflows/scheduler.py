"""
Aggregation Scheduler

Pulls ready events from the outbox and recomputes everything downstream of
the facts they announce:

- OHLC candles for each configured granularity, for the unfiltered scope and
  for each affected domain and resource type
- Quality slices, unfiltered and per affected domain
- Gold rollups of each affected UTC day

Work is idempotent: a crash between aggregation and marking the batch
processed only repeats the recomputation.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

import structlog
from prometheus_client import Counter, Histogram

from netpulse.analytics.gold import GoldSummarizer
from netpulse.analytics.ohlc import OHLCEngine
from netpulse.analytics.quality import QualityScorer
from netpulse.config.settings import PipelineSettings
from netpulse.errors import PipelineError
from netpulse.warehouse.time_buckets import bucket_index, date_of, now_ms, period_bounds
from netpulse.workflows.outbox import ReadyEvent, ReadyOutbox

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

SCHEDULER_TICKS = Counter(
    "netpulse_scheduler_ticks_total",
    "Aggregation scheduler ticks",
    ["status"],
)

SCHEDULER_EVENTS = Counter(
    "netpulse_scheduler_events_total",
    "Ready events aggregated",
)

SCHEDULER_TICK_DURATION = Histogram(
    "netpulse_scheduler_tick_seconds",
    "Time spent in one aggregation tick",
)


@dataclass
class TickResult:
    """Work done by one tick"""
    events: int = 0
    candles_refreshed: int = 0
    quality_slices: int = 0
    gold_days: List[str] = field(default_factory=list)


class AggregationScheduler:
    """
    Drives downstream aggregation from the ready outbox.

    Example:
        scheduler = AggregationScheduler(outbox, ohlc, quality, gold, settings.pipeline)
        await scheduler.tick()
    """

    def __init__(
        self,
        outbox: ReadyOutbox,
        ohlc: OHLCEngine,
        quality: QualityScorer,
        gold: GoldSummarizer,
        settings: PipelineSettings,
        clock: Callable[[], int] = now_ms,
    ):
        self.outbox = outbox
        self.ohlc = ohlc
        self.quality = quality
        self.gold = gold
        self.settings = settings
        self.clock = clock
        self._last_gold_date: Optional[str] = None
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @staticmethod
    def _scopes(events: Sequence[ReadyEvent], period_type: str) -> Set[Tuple[int, Optional[str], Optional[str]]]:
        scopes = set()
        for event in events:
            bucket = bucket_index(event.timestamp, period_type)
            scopes.add((bucket, None, None))
            if event.domain:
                scopes.add((bucket, event.domain, None))
            if event.resource_type:
                scopes.add((bucket, None, event.resource_type))
        return scopes

    async def tick(self) -> TickResult:
        """
        Aggregate one batch of ready events.

        Returns:
            TickResult describing the work done
        """
        result = TickResult()
        events = await self.outbox.claim(self.settings.outbox_batch_size)
        if not events:
            return result

        start_time = time.perf_counter()
        result.events = len(events)

        for period_type in self.settings.ohlc_period_types:
            for bucket, domain, resource_type in sorted(
                self._scopes(events, period_type), key=lambda s: (s[0], s[1] or "", s[2] or "")
            ):
                period_start, period_end = period_bounds(bucket, period_type)
                await self.ohlc.generate(period_type, period_start, period_end, domain, resource_type)
                result.candles_refreshed += 1

        quality_period = self.settings.quality_period_type
        for bucket, domain, resource_type in self._scopes(events, quality_period):
            if resource_type is not None:
                continue
            await self.quality.score_period(quality_period, bucket, domain)
            result.quality_slices += 1

        for date in sorted({date_of(e.timestamp) for e in events}):
            await self.gold.summarize_day(date)
            await self.gold.summarize_domains(date)
            result.gold_days.append(date)

        await self.outbox.mark_processed([e.event_id for e in events], self.clock())

        SCHEDULER_EVENTS.inc(len(events))
        SCHEDULER_TICK_DURATION.observe(time.perf_counter() - start_time)
        logger.info(
            "Aggregation tick complete",
            events=result.events,
            candles=result.candles_refreshed,
            quality_slices=result.quality_slices,
            gold_days=result.gold_days,
        )
        return result

    async def run_daily_gold(self) -> List[str]:
        """Roll up the trailing Gold window."""
        dates = await self.gold.run(self.settings.gold_window_days)
        self._last_gold_date = date_of(self.clock())
        return dates

    async def run_forever(self) -> None:
        """Tick on an interval until stopped; run the daily Gold job on each new UTC day."""
        logger.info("Aggregation scheduler started", interval=self.settings.scheduler_interval_seconds)
        while not self._stop.is_set():
            try:
                await self.tick()
                if self._last_gold_date != date_of(self.clock()):
                    await self.run_daily_gold()
                SCHEDULER_TICKS.labels(status="ok").inc()
            except PipelineError as e:
                SCHEDULER_TICKS.labels(status="error").inc()
                logger.error("Aggregation tick failed", error=e.message, code=e.code)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.settings.scheduler_interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Aggregation scheduler stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self.run_forever(), name="netpulse-aggregation-scheduler")
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
