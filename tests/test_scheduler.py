"""Tests for the scheduler abstraction and the loopback transport."""

import threading

import pytest

from codesync.scheduler import ManualClock, ThreadedScheduler
from codesync.transport import LoopbackLink


class TestManualClock:
    def test_advance_and_set(self):
        clock = ManualClock(100)
        assert clock() == 100
        assert clock.advance(5) == 105
        clock.set(50)
        assert clock() == 50


class TestManualScheduler:
    def test_ticks_at_exact_times(self, clock, scheduler):
        start = clock()
        fired = []
        scheduler.every(5, lambda: fired.append(clock()))
        assert scheduler.advance(12) == 2
        assert fired == [start + 5, start + 10]

    def test_clock_ends_at_target(self, clock, scheduler):
        start = clock()
        scheduler.every(5, lambda: None)
        scheduler.advance(12)
        assert clock() == start + 12

    def test_interleaves_tasks_in_due_order(self, scheduler):
        order = []
        scheduler.every(3, lambda: order.append("a"))
        scheduler.every(5, lambda: order.append("b"))
        scheduler.advance(10)
        assert order == ["a", "b", "a", "a", "b"]

    def test_cancel(self, scheduler):
        fired = []
        task = scheduler.every(1, lambda: fired.append(1))
        scheduler.advance(2)
        task.cancel()
        assert not task.active
        scheduler.advance(5)
        assert len(fired) == 2
        assert scheduler.tasks == []

    def test_failing_tick_keeps_schedule(self, scheduler):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        scheduler.every(1, flaky)
        assert scheduler.advance(3) == 3
        assert len(calls) == 3

    def test_run_pending(self, clock, scheduler):
        fired = []
        scheduler.every(5, lambda: fired.append(1))
        clock.advance(5)
        assert scheduler.run_pending() == 1
        assert scheduler.run_pending() == 0

    def test_shutdown_cancels_everything(self, scheduler):
        task = scheduler.every(1, lambda: None)
        scheduler.shutdown()
        assert not task.active
        assert scheduler.advance(10) == 0

    def test_invalid_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.every(0, lambda: None)


class TestThreadedScheduler:
    def test_runs_and_cancels(self):
        ticked = threading.Event()
        scheduler = ThreadedScheduler()
        try:
            task = scheduler.every(0.05, ticked.set, name="test-tick")
            assert ticked.wait(timeout=5)
            task.cancel()
            task.cancel()
            assert not task.active
        finally:
            scheduler.shutdown(wait=True)

    def test_usable_after_shutdown(self):
        scheduler = ThreadedScheduler()
        scheduler.every(60, lambda: None)
        scheduler.shutdown(wait=True)
        assert not scheduler.running
        ticked = threading.Event()
        try:
            scheduler.every(0.05, ticked.set)
            assert scheduler.running
            assert ticked.wait(timeout=5)
        finally:
            scheduler.shutdown(wait=True)

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            ThreadedScheduler().every(-1, lambda: None)


class TestLoopbackLink:
    def test_queued_until_delivered(self):
        link = LoopbackLink()
        received = []
        link.secondary.set_receiver(received.append)
        assert link.primary.send(b"one")
        assert received == []
        assert link.pending_count == 1
        assert link.deliver_all() == 1
        assert received == [b"one"]

    def test_both_directions(self):
        link = LoopbackLink(auto_deliver=True)
        at_primary, at_secondary = [], []
        link.primary.set_receiver(at_primary.append)
        link.secondary.set_receiver(at_secondary.append)
        link.primary.send(b"push")
        link.secondary.send(b"request")
        assert at_secondary == [b"push"]
        assert at_primary == [b"request"]

    def test_send_when_disconnected(self):
        link = LoopbackLink(connected=False)
        assert not link.primary.is_reachable()
        assert not link.primary.send(b"x")
        assert link.sent_count == 0

    def test_disconnect_drops_in_flight(self):
        link = LoopbackLink()
        received = []
        link.secondary.set_receiver(received.append)
        link.primary.send(b"lost")
        link.disconnect()
        link.connect()
        assert link.deliver_all() == 0
        assert received == []

    def test_newest_first(self):
        link = LoopbackLink()
        received = []
        link.secondary.set_receiver(received.append)
        link.primary.send(b"old")
        link.primary.send(b"new")
        link.deliver_all(newest_first=True)
        assert received == [b"new", b"old"]

    def test_no_receiver_drops(self):
        link = LoopbackLink(auto_deliver=True)
        assert link.primary.send(b"nobody home")
