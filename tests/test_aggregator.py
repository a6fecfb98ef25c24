"""
Unit Tests for the Aggregator
Tests overall, recent and per-tool views and query listing order.
"""
import pytest

from query_monitor.monitoring.aggregator import Aggregator
from query_monitor.monitoring.recorder import EventRecorder
from query_monitor.monitoring.records import OperationOutcome


class TestAggregatorViews:
    """Test views built over recorder state."""

    @pytest.fixture(autouse=True)
    def setup_aggregator(self, clock, wall_clock, settings_factory):
        self.clock = clock
        self.wall_clock = wall_clock
        self.settings_factory = settings_factory
        self.build()

    def build(self, **overrides):
        overrides.setdefault("slow_query_threshold_ms", 1000.0)
        self.settings = self.settings_factory(**overrides)
        self.aggregator = Aggregator(self.settings)
        self.recorder = EventRecorder(
            self.settings,
            self.aggregator,
            clock=self.clock,
            wall_clock=self.wall_clock,
        )

    def run(self, tool, duration_ms, **outcome):
        handle = self.recorder.start(tool)
        self.clock.advance_ms(duration_ms)
        self.recorder.end(handle, OperationOutcome.coerce(outcome))

    def test_overall_view(self):
        self.run("execute_query", 100)
        self.run("execute_query", 300, status="error")
        self.run("list_tables", 2000)

        overall = self.aggregator.overall_view(self.recorder.snapshot())

        assert overall["totalQueries"] == 3
        assert overall["avgQueryTime"] == 800.0
        assert overall["slowQueries"] == 1
        assert overall["errorRate"] == 33.33

    def test_recent_view_limited_to_window(self):
        self.build(recent_window_size=3, slow_query_threshold_ms=1000.0)
        for duration in [1000, 1000, 10, 20, 30]:
            self.run("execute_query", duration)

        recent = self.aggregator.recent_view(self.recorder.snapshot())

        assert recent["count"] == 3
        assert recent["avgDuration"] == pytest.approx(20.0)
        assert recent["maxDuration"] == pytest.approx(30.0)
        assert recent["minDuration"] == pytest.approx(10.0)
        assert recent["slowQueryRate"] == 0

    def test_recent_view_time_window(self):
        self.build(recent_window_seconds=60)
        self.run("execute_query", 10)
        self.clock.advance(120)
        self.run("execute_query", 30)

        recent = self.aggregator.recent_view(self.recorder.snapshot())

        assert recent["count"] == 1
        assert recent["avgDuration"] == pytest.approx(30.0)

    def test_empty_recent_view(self):
        recent = self.aggregator.recent_view(self.recorder.snapshot())
        assert recent == {
            "count": 0,
            "avgDuration": 0.0,
            "maxDuration": 0.0,
            "minDuration": 0.0,
            "errorRate": 0.0,
            "slowQueryRate": 0.0,
        }

    def test_by_tool_sorted(self):
        self.run("list_tables", 10)
        self.run("execute_query", 10)

        by_tool = self.aggregator.by_tool_view(self.recorder.snapshot())

        assert list(by_tool) == ["execute_query", "list_tables"]

    def test_listing_most_recent_first(self):
        for tool in ["a", "b", "c"]:
            self.wall_clock.advance(1)
            self.run(tool, 10)

        listing = self.aggregator.query_listing(self.recorder.snapshot(), limit=10)

        assert [entry["tool"] for entry in listing] == ["c", "b", "a"]

    def test_listing_ties_put_later_finalized_first(self):
        # Wall clock does not move, so every start timestamp is equal
        for tool in ["a", "b", "c"]:
            self.run(tool, 10)

        listing = self.aggregator.query_listing(self.recorder.snapshot(), limit=10)

        assert [entry["tool"] for entry in listing] == ["c", "b", "a"]

    def test_listing_limit_and_filters(self):
        for tool, duration in [("a", 10), ("b", 1500), ("a", 2000), ("b", 10)]:
            self.wall_clock.advance(1)
            self.run(tool, duration)
        state = self.recorder.snapshot()

        assert len(self.aggregator.query_listing(state, limit=2)) == 2
        assert [e["tool"] for e in self.aggregator.query_listing(state, 10, tool_filter="a")] == ["a", "a"]

        slow = self.aggregator.query_listing(state, 10, slow_only=True)
        assert [(e["tool"], e["duration"]) for e in slow] == [("a", 2000.0), ("b", 1500.0)]

        slow_a = self.aggregator.query_listing(state, 10, tool_filter="a", slow_only=True)
        assert len(slow_a) == 1
