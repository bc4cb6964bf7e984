"""Rate-limited FIFO queue for the Ad Manager API.

Ad Manager enforces a strict per-window call budget, so every call to it goes
through ``RequestQueue``:

- Requests are dispatched in submission order (no priorities, no reordering).
- At most ``max_concurrency`` requests run at once (default 1).
- Consecutive dispatch starts are at least ``min_interval`` seconds apart,
  across all callers in the process.

A request's failure settles only its own future. The queue never retries.
Workers are started on demand and exit once the queue is empty, so an idle
queue holds no tasks.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from stephie import config as config_module
from stephie.clock import Clock, system_clock

log = structlog.get_logger()


class QueueState(Enum):
    """Whether the queue currently has workers draining it."""

    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class QueuedRequest:
    """An operation waiting for its dispatch slot."""

    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    enqueued_at: float
    id: str = field(default_factory=lambda: f"rq_{uuid.uuid4().hex[:12]}")


class RequestQueue:
    """Serializes and rate-limits operations against one external API."""

    def __init__(
        self,
        min_interval: float | None = None,
        max_concurrency: int | None = None,
        *,
        clock: Clock = system_clock,
        name: str = "gam",
    ) -> None:
        """Initialize the queue.

        Args:
            min_interval: Minimum seconds between dispatch starts (default from settings).
            max_concurrency: Maximum operations running at once (default from settings).
            clock: Time source for the dispatch delay.
            name: Label used in logs.
        """
        cfg = config_module.settings
        self.min_interval = min_interval if min_interval is not None else cfg.queue_min_interval
        self.max_concurrency = (
            max_concurrency if max_concurrency is not None else cfg.queue_max_concurrency
        )
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.name = name
        self._clock = clock
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[QueuedRequest] = asyncio.Queue()
        self._dispatch_lock = asyncio.Lock()
        self._workers: set[asyncio.Task[None]] = set()
        self._last_dispatch: float | None = None
        self._active = 0
        self._stats = {"queued": 0, "completed": 0, "failed": 0, "cancelled": 0}

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is loop:
            return
        if self._workers or not self._queue.empty():
            raise RuntimeError(f"RequestQueue '{self.name}' is in use by another event loop")
        self._loop = loop
        self._queue = asyncio.Queue()
        self._dispatch_lock = asyncio.Lock()

    def submit[T](self, operation: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Enqueue an operation and return the future it will settle.

        Must be called from a running event loop. The future resolves with the
        operation's return value or raises the operation's exception.
        """
        self._bind_loop()
        assert self._loop is not None
        future: asyncio.Future[T] = self._loop.create_future()
        request = QueuedRequest(operation=operation, future=future, enqueued_at=self._clock.now())
        self._queue.put_nowait(request)
        self._stats["queued"] += 1

        log.debug(
            "Enqueued request",
            queue=self.name,
            request_id=request.id,
            pending=self._queue.qsize(),
        )
        self._ensure_workers()
        return future

    async def run[T](self, operation: Callable[[], Awaitable[T]]) -> T:
        """Submit an operation and wait for its result."""
        return await self.submit(operation)

    def _ensure_workers(self) -> None:
        assert self._loop is not None
        if self._queue.empty():
            return
        while len(self._workers) < self.max_concurrency:
            worker_id = len(self._workers)
            task = self._loop.create_task(self._worker(worker_id))
            self._workers.add(task)

    async def _wait_for_dispatch_slot(self) -> None:
        """Hold the dispatch lock until ``min_interval`` has passed since the last dispatch."""
        async with self._dispatch_lock:
            while self._last_dispatch is not None:
                delay = self.min_interval - (self._clock.now() - self._last_dispatch)
                if delay <= 0:
                    break
                log.debug("Delaying before next request", queue=self.name, delay_ms=round(delay * 1000))
                await self._clock.sleep(delay)
            self._last_dispatch = self._clock.now()

    async def _worker(self, worker_id: int) -> None:
        """Drain the queue one request at a time, then exit."""
        current = asyncio.current_task()
        log.debug("Queue worker started", queue=self.name, worker_id=worker_id)
        try:
            while True:
                try:
                    request = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break

                try:
                    await self._dispatch(request)
                finally:
                    self._queue.task_done()

                # Yield so the next dispatch starts on a fresh scheduling turn
                await asyncio.sleep(0)
        finally:
            if current is not None:
                self._workers.discard(current)
            log.debug("Queue worker stopped", queue=self.name, worker_id=worker_id)

    async def _dispatch(self, request: QueuedRequest) -> None:
        future = request.future
        if future.done():
            # Caller gave up before the request was dispatched
            self._stats["cancelled"] += 1
            log.debug("Skipping cancelled request", queue=self.name, request_id=request.id)
            return

        await self._wait_for_dispatch_slot()

        self._active += 1
        log.debug(
            "Processing request",
            queue=self.name,
            request_id=request.id,
            remaining=self._queue.qsize(),
            waited_ms=round((self._clock.now() - request.enqueued_at) * 1000),
        )
        try:
            result = await request.operation()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            self._stats["cancelled"] += 1
            raise
        except Exception as e:
            self._stats["failed"] += 1
            log.warning("Request failed", queue=self.name, request_id=request.id, error=str(e))
            if not future.done():
                future.set_exception(e)
        else:
            self._stats["completed"] += 1
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1

    async def stop(self, timeout: float = 5.0) -> None:
        """Let queued requests drain, then cancel any remaining workers."""
        if not self._workers:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except TimeoutError:
            log.warning("Queue drain timeout, forcing shutdown", queue=self.name)

        workers = list(self._workers)
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()

        # Anything still queued will never run
        while not self._queue.empty():
            request = self._queue.get_nowait()
            request.future.cancel()
            self._stats["cancelled"] += 1
            self._queue.task_done()

        log.info("Request queue stopped", queue=self.name, stats=self.stats)

    @property
    def state(self) -> QueueState:
        return QueueState.DRAINING if self._workers else QueueState.IDLE

    @property
    def pending(self) -> int:
        """Requests enqueued but not yet dispatched."""
        return self._queue.qsize()

    @property
    def active(self) -> int:
        """Requests currently executing."""
        return self._active

    @property
    def stats(self) -> dict[str, int]:
        """Get queue statistics."""
        return {**self._stats, "pending": self._queue.qsize(), "active": self._active}


# Global queue instance
_gam_queue: RequestQueue | None = None


def get_gam_queue() -> RequestQueue:
    """Get or create the global Ad Manager request queue."""
    global _gam_queue  # noqa: PLW0603
    if _gam_queue is None:
        _gam_queue = RequestQueue(name="gam")
    return _gam_queue


async def shutdown_gam_queue() -> None:
    """Drain and drop the global request queue."""
    global _gam_queue  # noqa: PLW0603
    if _gam_queue is not None:
        await _gam_queue.stop()
        _gam_queue = None
