"""Tests for core/throttle.py — serialized dispatch with spacing and back-off."""

import asyncio

import pytest

from core.throttle import MIN_REQUEST_INTERVAL, ThrottleQueue

# FakeClock runs near 1.7e9 epoch seconds, where one float step is ~2.4e-7
EPS = 1e-6


def _recorder(clock, log, name, result=None, exc=None):
    async def request():
        log.append((name, clock.now))
        if exc is not None:
            raise exc
        return result if result is not None else name
    return request


class TestSpacing:
    def test_default_interval(self):
        assert ThrottleQueue().min_interval == MIN_REQUEST_INTERVAL == 0.8

    @pytest.mark.asyncio
    async def test_consecutive_dispatches_spaced(self, throttle, clock):
        log = []
        results = await asyncio.gather(*(throttle.submit(_recorder(clock, log, i))
                                         for i in range(4)))

        assert results == [0, 1, 2, 3]
        times = [t for _, t in log]
        for earlier, later in zip(times, times[1:]):
            assert later - earlier >= 0.8 - EPS
        assert throttle.dispatched == 4

    @pytest.mark.asyncio
    async def test_first_request_not_delayed(self, throttle, clock):
        log = []
        start = clock.now
        await throttle.submit(_recorder(clock, log, "a"))
        assert log == [("a", start)]
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_spacing_across_separate_bursts(self, throttle, clock):
        log = []
        await throttle.submit(_recorder(clock, log, "a"))
        clock.advance(0.3)
        await throttle.submit(_recorder(clock, log, "b"))
        assert log[1][1] - log[0][1] == pytest.approx(0.8, abs=EPS)

    @pytest.mark.asyncio
    async def test_idle_gap_counts_toward_spacing(self, throttle, clock):
        log = []
        await throttle.submit(_recorder(clock, log, "a"))
        clock.advance(5)
        await throttle.submit(_recorder(clock, log, "b"))
        assert clock.sleeps == []


class TestOrdering:
    @pytest.mark.asyncio
    async def test_fifo(self, throttle, clock):
        log = []
        await asyncio.gather(*(throttle.submit(_recorder(clock, log, n)) for n in "abcde"))
        assert [n for n, _ in log] == list("abcde")

    @pytest.mark.asyncio
    async def test_one_at_a_time(self, throttle):
        active = []
        peak = []

        async def request():
            active.append(1)
            peak.append(len(active))
            await asyncio.sleep(0)
            active.pop()

        await asyncio.gather(*(throttle.submit(request) for _ in range(5)))
        assert max(peak) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_reaches_only_its_caller(self, throttle, clock):
        log = []
        first, second = await asyncio.gather(
            throttle.submit(_recorder(clock, log, "a", exc=ValueError("boom"))),
            throttle.submit(_recorder(clock, log, "b")),
            return_exceptions=True,
        )
        assert isinstance(first, ValueError)
        assert second == "b"
        assert throttle.pending == 0

    @pytest.mark.asyncio
    async def test_queue_restarts_after_draining(self, throttle, clock):
        log = []
        await throttle.submit(_recorder(clock, log, "a"))
        assert throttle.pending == 0
        assert await throttle.submit(_recorder(clock, log, "b")) == "b"
        assert throttle.dispatched == 2


class TestBackoff:
    @pytest.mark.asyncio
    async def test_dispatch_waits_for_deadline(self, throttle, clock):
        log = []
        start = clock.now
        throttle.defer_for(30)
        await throttle.submit(_recorder(clock, log, "a"))
        assert log[0][1] >= start + 30 - EPS

    @pytest.mark.asyncio
    async def test_backoff_set_mid_queue_delays_rest(self, throttle, clock):
        log = []

        async def tripping():
            log.append(("trip", clock.now))
            throttle.defer_for(60)
            return "trip"

        await asyncio.gather(throttle.submit(tripping),
                             throttle.submit(_recorder(clock, log, "next")))
        assert log[1][1] - log[0][1] >= 60 - EPS

    def test_defer_never_shortens(self, throttle, clock):
        throttle.defer_for(100)
        throttle.defer_for(10)
        throttle.defer_until(clock.now + 5)
        assert throttle.backoff_until == clock.now + 100
        assert throttle.backoff_remaining() == pytest.approx(100)

    def test_defer_extends(self, throttle, clock):
        throttle.defer_for(10)
        throttle.defer_for(100)
        assert throttle.backoff_until == clock.now + 100

    def test_ensure_backoff_only_when_inactive(self, throttle, clock):
        assert throttle.ensure_backoff(60) is True
        assert throttle.ensure_backoff(600) is False
        assert throttle.backoff_until == clock.now + 60
        clock.advance(61)
        assert throttle.backoff_remaining() == 0.0
        assert throttle.ensure_backoff(5) is True
        assert throttle.backoff_until == clock.now + 5
