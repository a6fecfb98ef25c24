"""
Unit Tests for the Event Recorder
Tests operation lifecycle, history retention and pool event derivation.
"""
import pytest

from query_monitor.constants import OperationStatus, PoolEventKind
from query_monitor.monitoring.aggregator import Aggregator
from query_monitor.monitoring.recorder import EventRecorder
from query_monitor.monitoring.records import OperationOutcome, PoolSnapshot


@pytest.fixture
def recorder_factory(clock, wall_clock, settings_factory):
    def factory(memory_probe=None, **overrides):
        settings = settings_factory(**overrides)
        return EventRecorder(
            settings,
            Aggregator(settings),
            clock=clock,
            wall_clock=wall_clock,
            memory_probe=memory_probe,
        )
    return factory


class TestOperationLifecycle:
    """Test start/end handling."""

    def test_start_issues_unique_handles(self, recorder_factory):
        recorder = recorder_factory()
        handles = {recorder.start("execute_query") for _ in range(50)}
        assert len(handles) == 50
        assert all(handle.startswith("q_") for handle in handles)
        assert recorder.snapshot().in_flight == 50

    def test_end_computes_duration(self, recorder_factory, clock):
        recorder = recorder_factory()
        handle = recorder.start("execute_query", query="SELECT 1")
        clock.advance_ms(250)

        record = recorder.end(handle, OperationOutcome(row_count=1))

        assert record.duration == pytest.approx(250.0)
        assert record.status == OperationStatus.COMPLETED
        assert record.row_count == 1
        assert record.query == "SELECT 1"
        assert record.database == "default"

        state = recorder.snapshot()
        assert state.in_flight == 0
        assert len(state.history) == 1
        assert state.overall.total_queries == 1

    def test_end_is_consumed_once(self, recorder_factory):
        recorder = recorder_factory()
        handle = recorder.start("execute_query")

        assert recorder.end(handle, OperationOutcome()) is not None
        assert recorder.end(handle, OperationOutcome()) is None
        assert recorder.snapshot().overall.total_queries == 1

    def test_unknown_handle_is_ignored(self, recorder_factory):
        recorder = recorder_factory()
        assert recorder.end("q_missing", OperationOutcome()) is None
        assert recorder.snapshot().overall.total_queries == 0

    def test_query_text_truncated(self, recorder_factory):
        recorder = recorder_factory(max_query_text_length=10)
        handle = recorder.start("execute_query", query="SELECT * FROM very_long_table")
        record = recorder.end(handle, OperationOutcome())
        assert record.query == "SELECT * F..."

    def test_memory_delta(self, recorder_factory):
        readings = iter([100.0, 112.5])
        recorder = recorder_factory(memory_probe=lambda: next(readings), track_memory=True)

        handle = recorder.start("execute_query")
        record = recorder.end(handle, OperationOutcome())

        assert record.memory_delta_mb == pytest.approx(12.5)

    def test_history_is_bounded_but_totals_are_lifetime(self, recorder_factory):
        recorder = recorder_factory(max_metrics_history=5)
        for _ in range(12):
            recorder.end(recorder.start("execute_query"), OperationOutcome())

        state = recorder.snapshot()
        assert len(state.history) == 5
        assert state.overall.total_queries == 12
        assert state.categories["execute_query"].count == 12

    def test_leaked_handles_are_bounded(self, recorder_factory):
        recorder = recorder_factory(max_metrics_history=3)
        handles = [recorder.start("execute_query") for _ in range(5)]

        assert recorder.snapshot().in_flight == 3
        # Oldest leaked handles were dropped
        assert recorder.end(handles[0], OperationOutcome()) is None
        assert recorder.end(handles[-1], OperationOutcome()) is not None

    def test_record_completed(self, recorder_factory, wall_clock):
        recorder = recorder_factory()
        record = recorder.record_completed("list_tables", 42.0, OperationOutcome(row_count=4))

        assert record.duration == 42.0
        assert record.timestamp == pytest.approx(wall_clock() * 1000 - 42.0)
        assert recorder.snapshot().categories["list_tables"].count == 1

    def test_non_finite_duration_ignored(self, recorder_factory):
        recorder = recorder_factory()

        assert recorder.record_completed("list_tables", float("inf"), OperationOutcome()) is None
        assert recorder.record_completed("list_tables", float("nan"), OperationOutcome()) is None

        state = recorder.snapshot()
        assert state.history == ()
        assert state.overall.total_queries == 0
        assert state.categories == {}

    def test_negative_duration_clamped(self, recorder_factory):
        recorder = recorder_factory()
        record = recorder.record_completed("list_tables", -5, OperationOutcome())
        assert record.duration == 0.0


class TestPoolRecording:
    """Test pool snapshots and connection events."""

    def test_first_snapshot_is_baseline(self, recorder_factory):
        recorder = recorder_factory()
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=5, errors=2))

        state = recorder.snapshot()
        assert state.pool_snapshot.total_connections == 5
        assert state.pool_snapshot.timestamp is not None
        assert state.pool_events == ()

    def test_delta_events(self, recorder_factory):
        recorder = recorder_factory()
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=5, errors=1, retries=0))
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=8, errors=3, retries=1))
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=6, errors=3, retries=1))

        events = [(event.kind, event.count) for event in recorder.snapshot().pool_events]
        assert events == [
            (PoolEventKind.CONNECT, 3),
            (PoolEventKind.ERROR, 2),
            (PoolEventKind.RETRY, 1),
            (PoolEventKind.DISCONNECT, 2),
        ]

    def test_counter_reset_produces_no_event(self, recorder_factory):
        recorder = recorder_factory()
        recorder.record_pool_snapshot(PoolSnapshot(errors=10))
        recorder.record_pool_snapshot(PoolSnapshot(errors=0))
        assert recorder.snapshot().pool_events == ()

    def test_events_trimmed_by_age(self, recorder_factory, clock):
        recorder = recorder_factory(pool_event_window_seconds=60)
        recorder.record_connection_event(PoolEventKind.ERROR, {})
        clock.advance(61)
        recorder.record_connection_event(PoolEventKind.RETRY, {})

        events = recorder.snapshot().pool_events
        assert [event.kind for event in events] == [PoolEventKind.RETRY]

    def test_events_trimmed_by_count(self, recorder_factory):
        recorder = recorder_factory(max_pool_events=3)
        for _ in range(5):
            recorder.record_connection_event(PoolEventKind.CONNECT, {})
        assert len(recorder.snapshot().pool_events) == 3

    def test_connection_events_update_snapshot(self, recorder_factory):
        recorder = recorder_factory()
        recorder.record_connection_event(PoolEventKind.CONNECT, {})
        recorder.record_connection_event(PoolEventKind.CONNECT, {})
        recorder.record_connection_event(PoolEventKind.DISCONNECT, {})
        recorder.record_connection_event(PoolEventKind.ERROR, {"error": "refused"})
        recorder.record_connection_event(PoolEventKind.RETRY, {})

        snapshot = recorder.current_pool_snapshot()
        assert snapshot.total_connections == 2
        assert snapshot.active_connections == 1
        assert snapshot.errors == 1
        assert snapshot.retries == 1
        assert recorder.snapshot().pool_events[3].details == {"error": "refused"}


class TestMaintenance:
    """Test reset and reconfiguration."""

    def test_reset_clears_everything(self, recorder_factory):
        recorder = recorder_factory()
        recorder.end(recorder.start("execute_query"), OperationOutcome())
        recorder.start("execute_query")
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=3))

        recorder.reset()

        state = recorder.snapshot()
        assert state.history == ()
        assert state.in_flight == 0
        assert state.overall.total_queries == 0
        assert state.categories == {}
        assert state.pool_snapshot == PoolSnapshot()

    def test_reset_restores_pool_baseline(self, recorder_factory):
        recorder = recorder_factory()
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=3))
        recorder.reset()
        recorder.record_pool_snapshot(PoolSnapshot(total_connections=9))
        assert recorder.snapshot().pool_events == ()

    def test_configure_shrinks_history_keeping_newest(self, recorder_factory, settings_factory):
        recorder = recorder_factory(max_metrics_history=10)
        for tool in [f"tool_{i}" for i in range(6)]:
            recorder.end(recorder.start(tool), OperationOutcome())

        recorder.configure(settings_factory(max_metrics_history=2))

        assert [r.tool for r in recorder.snapshot().history] == ["tool_4", "tool_5"]
