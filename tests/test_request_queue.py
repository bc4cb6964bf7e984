"""Tests for the rate-limited RequestQueue."""

import asyncio

import pytest

from stephie.clock import SystemClock
from stephie.gam.queue import QueueState, RequestQueue, get_gam_queue, shutdown_gam_queue
from tests.harness import FakeClock, make_queue


def recorder(clock, log: list, label: str, result: object = None):
    async def operation():
        log.append((label, clock.now()))
        await asyncio.sleep(0)
        return result if result is not None else label

    return operation


class TestDispatchOrder:
    """FIFO order and dispatch spacing."""

    @pytest.mark.asyncio
    async def test_three_requests_run_in_order_spaced_by_interval(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0.5)
        started: list[tuple[str, float]] = []

        futures = [queue.submit(recorder(clock, started, label)) for label in "ABC"]
        results = await asyncio.gather(*futures)

        assert results == ["A", "B", "C"]
        assert [label for label, _ in started] == ["A", "B", "C"]
        times = [at for _, at in started]
        assert times[1] - times[0] >= 0.5
        assert times[2] - times[1] >= 0.5
        assert times[2] - times[0] >= 1.0

    @pytest.mark.asyncio
    async def test_total_span_covers_all_gaps(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0.25)
        started: list[tuple[str, float]] = []

        await asyncio.gather(*(queue.run(recorder(clock, started, str(i))) for i in range(10)))

        times = [at for _, at in started]
        assert all(b - a >= 0.25 for a, b in zip(times, times[1:], strict=False))
        assert times[-1] - times[0] >= 9 * 0.25

    @pytest.mark.asyncio
    async def test_first_request_is_not_delayed(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0.5)

        await queue.run(recorder(clock, [], "A"))

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_spacing_holds_across_idle_periods(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0.5)
        started: list[tuple[str, float]] = []

        await queue.run(recorder(clock, started, "A"))
        clock.advance(0.2)
        await queue.run(recorder(clock, started, "B"))

        assert started[1][1] - started[0][1] >= 0.5

    @pytest.mark.asyncio
    async def test_no_delay_after_long_idle(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0.5)

        await queue.run(recorder(clock, [], "A"))
        clock.advance(5)
        await queue.run(recorder(clock, [], "B"))

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_real_clock_spacing(self) -> None:
        clock = SystemClock()
        queue = RequestQueue(min_interval=0.05, max_concurrency=1, clock=clock)
        started: list[tuple[str, float]] = []

        await asyncio.gather(*(queue.run(recorder(clock, started, str(i))) for i in range(4)))

        times = [at for _, at in started]
        # time.time() resolution allowance
        assert all(b - a >= 0.049 for a, b in zip(times, times[1:], strict=False))


class TestFailures:
    """Failures settle only their own request."""

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_neighbours(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)

        async def fail() -> None:
            raise ValueError("bad request")

        futures = [
            queue.submit(recorder(clock, [], "A")),
            queue.submit(fail),
            queue.submit(recorder(clock, [], "C")),
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

        assert results[0] == "A"
        assert isinstance(results[1], ValueError)
        assert results[2] == "C"
        assert queue.stats["completed"] == 2
        assert queue.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_failed_request_is_not_retried(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)
        calls = 0

        async def fail() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            await queue.run(fail)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_skipped(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)
        ran: list[str] = []

        async def op(label: str) -> str:
            ran.append(label)
            return label

        first = queue.submit(lambda: op("A"))
        second = queue.submit(lambda: op("B"))
        second.cancel()
        await first
        await asyncio.sleep(0)

        assert ran == ["A"]
        assert queue.stats["cancelled"] == 1


class TestConcurrency:
    """max_concurrency bound."""

    @pytest.mark.asyncio
    async def test_default_runs_one_at_a_time(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0)
        running = 0
        peak = 0

        async def op() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            running -= 1

        await asyncio.gather(*(queue.run(op) for _ in range(6)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_bounded_parallelism(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock, min_interval=0, max_concurrency=3)
        running = 0
        peak = 0
        release = asyncio.Event()

        async def op() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await release.wait()
            running -= 1

        futures = [queue.submit(op) for _ in range(8)]
        for _ in range(5):
            await asyncio.sleep(0)
        assert queue.active == 3
        release.set()
        await asyncio.gather(*futures)

        assert peak == 3

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError, match="max_concurrency"):
            RequestQueue(min_interval=0, max_concurrency=0)


class TestLifecycle:
    """Idle/draining state and shutdown."""

    @pytest.mark.asyncio
    async def test_state_returns_to_idle(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)
        assert queue.state is QueueState.IDLE

        future = queue.submit(recorder(clock, [], "A"))
        assert queue.state is QueueState.DRAINING
        await future
        for _ in range(3):
            await asyncio.sleep(0)

        assert queue.state is QueueState.IDLE
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_stop_drains_pending_work(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)
        futures = [queue.submit(recorder(clock, [], label)) for label in "AB"]

        await queue.stop()

        assert [f.result() for f in futures] == ["A", "B"]
        assert queue.state is QueueState.IDLE

    @pytest.mark.asyncio
    async def test_submit_after_stop_restarts(self, clock: FakeClock) -> None:
        queue = make_queue(clock=clock)
        await queue.run(recorder(clock, [], "A"))
        await queue.stop()

        assert await queue.run(recorder(clock, [], "B")) == "B"

    def test_submit_requires_running_loop(self) -> None:
        queue = make_queue()

        async def op() -> None:
            return None

        with pytest.raises(RuntimeError):
            queue.submit(op)

    @pytest.mark.asyncio
    async def test_global_queue(self) -> None:
        queue = get_gam_queue()
        assert get_gam_queue() is queue

        await shutdown_gam_queue()
        assert get_gam_queue() is not queue
