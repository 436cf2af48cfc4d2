"""Tests for the debounce queue."""

from domains.resurfacing.debounce import DebounceQueue


class FakeClock:
    def __init__(self, start=100.0):
        self.value = start

    def __call__(self):
        return self.value


class TestDebounceQueue:
    """Test fire-time ordering and rescheduling."""

    def test_pop_due_in_fire_order(self):
        queue = DebounceQueue()
        queue.schedule("b", 5.0)
        queue.schedule("a", 3.0)
        queue.schedule("c", 9.0)

        assert queue.pop_due(6.0) == ["a", "b"]
        assert len(queue) == 1
        assert "c" in queue

    def test_reschedule_supersedes_old_entry(self):
        """Only the latest fire time counts."""
        queue = DebounceQueue()
        queue.schedule("a", 1.0)
        queue.schedule("a", 10.0)

        assert queue.pop_due(5.0) == []
        assert queue.pop_due(10.0) == ["a"]
        assert queue.pop_due(20.0) == []

    def test_cancel(self):
        queue = DebounceQueue()
        queue.schedule("a", 1.0)

        assert queue.cancel("a") is True
        assert queue.cancel("a") is False
        assert queue.pop_due(5.0) == []
        assert "a" not in queue

    def test_schedule_in_uses_clock(self):
        clock = FakeClock(100.0)
        queue = DebounceQueue(clock)

        fire_at = queue.schedule_in("a", 2.0)

        assert fire_at == 102.0
        assert queue.pop_due() == []
        clock.value = 102.5
        assert queue.pop_due() == ["a"]

    def test_next_fire_time_skips_stale(self):
        queue = DebounceQueue()
        queue.schedule("a", 1.0)
        queue.schedule("b", 4.0)
        queue.cancel("a")

        assert queue.next_fire_time() == 4.0

    def test_next_fire_time_empty(self):
        queue = DebounceQueue()
        assert queue.next_fire_time() is None

    def test_clear(self):
        queue = DebounceQueue()
        queue.schedule("a", 1.0)
        queue.clear()
        assert len(queue) == 0
        assert queue.pop_due(100.0) == []
