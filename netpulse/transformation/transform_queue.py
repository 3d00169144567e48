"""
Transform Queue

Single-consumer asyncio queue of raw request ids awaiting enrichment.
Enqueueing starts a worker task when none is active; the worker processes
one id at a time, to completion, and exits once the queue is empty.

Failures are isolated per item: a bad record is logged and skipped and the
worker moves on to the next id. There is no automatic retry.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog
from prometheus_client import Counter, Gauge, Histogram

from netpulse.errors import MalformedInputError, NotFoundError, StorageError

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

TRANSFORM_ITEMS = Counter(
    "netpulse_transform_items_total",
    "Raw requests processed by the transform queue",
    ["status"],
)

TRANSFORM_DURATION = Histogram(
    "netpulse_transform_duration_seconds",
    "Time spent enriching one raw request",
)

TRANSFORM_QUEUE_DEPTH = Gauge(
    "netpulse_transform_queue_depth",
    "Raw request ids waiting for enrichment",
)


Processor = Callable[[str], Awaitable[Any]]


class TransformQueue:
    """
    Serializes enrichment of raw requests.

    Example:
        queue = TransformQueue(engine.enrich)
        queue.enqueue("req-1")
        await queue.join()
    """

    def __init__(self, processor: Processor, maxsize: int = 0):
        self.processor = processor
        self._queue: "asyncio.Queue[str]" = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def qsize(self) -> int:
        return self._queue.qsize()

    def enqueue(self, request_id: str) -> None:
        """
        Append an id and make sure a worker is running.

        Raises:
            asyncio.QueueFull: If the queue is bounded and full
        """
        self._queue.put_nowait(request_id)
        TRANSFORM_QUEUE_DEPTH.set(self._queue.qsize())
        if not self.is_processing:
            self._worker = asyncio.create_task(self._run(), name="netpulse-transform-worker")

    async def _run(self) -> None:
        while not self._queue.empty():
            request_id = self._queue.get_nowait()
            TRANSFORM_QUEUE_DEPTH.set(self._queue.qsize())
            try:
                await self._process(request_id)
            finally:
                self._queue.task_done()

    async def _process(self, request_id: str) -> None:
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            result = await self.processor(request_id)
            TRANSFORM_ITEMS.labels(status="ok" if result is not None else "missing").inc()
        except MalformedInputError as e:
            TRANSFORM_ITEMS.labels(status="malformed").inc()
            logger.warning("Skipping malformed raw request", request_id=request_id, error=e.message)
        except NotFoundError as e:
            TRANSFORM_ITEMS.labels(status="missing").inc()
            logger.debug("Raw request vanished before enrichment", request_id=request_id, error=e.message)
        except StorageError as e:
            TRANSFORM_ITEMS.labels(status="storage_error").inc()
            logger.error("Enrichment transaction failed", request_id=request_id, error=e.message)
        except Exception as e:
            TRANSFORM_ITEMS.labels(status="error").inc()
            logger.exception("Unexpected enrichment failure", request_id=request_id, error=str(e))
        finally:
            TRANSFORM_DURATION.observe(loop.time() - start_time)

    async def join(self) -> None:
        """Wait until every enqueued id has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then wait for the worker to exit."""
        await self.join()
        if self._worker is not None:
            await self._worker
            self._worker = None
        logger.info("Transform queue stopped")
