"""
Event Recorder
Ingests operation lifecycle events and connection pool state under a single lock.
"""
from __future__ import annotations

import itertools
import math
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any
from uuid import uuid4

from query_monitor.config import MonitoringSettings
from query_monitor.constants import DEFAULT_DATABASE, TRUNCATION_SUFFIX, PoolEventKind
from query_monitor.logging import get_logger
from query_monitor.monitoring.aggregator import Aggregator
from query_monitor.monitoring.records import (
    CategoryAggregate,
    OperationOutcome,
    OperationRecord,
    OverallAggregate,
    PoolEvent,
    PoolSnapshot,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecorderState:
    """Consistent copy of everything the read views need."""

    history: tuple[OperationRecord, ...]
    in_flight: int
    overall: OverallAggregate
    categories: dict[str, CategoryAggregate]
    pool_snapshot: PoolSnapshot
    pool_events: tuple[PoolEvent, ...]
    now_ms: float
    uptime_ms: float


class EventRecorder:
    """Thread-safe store of in-flight operations, finalized history and pool state.

    In-flight operations live in a dict keyed by handle; finalized operations and
    pool events live in ring buffers. Every mutation runs inside one short
    critical section, and readers take a copy through ``snapshot()``.
    """

    def __init__(
        self,
        settings: MonitoringSettings,
        aggregator: Aggregator,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        memory_probe: Callable[[], float] | None = None,
    ):
        self.settings = settings
        self._aggregator = aggregator
        self._clock = clock
        self._wall_clock = wall_clock
        self._memory_probe = memory_probe
        self._lock = threading.RLock()

        self._open: dict[str, OperationRecord] = {}
        self._history: deque[OperationRecord] = deque(maxlen=settings.max_metrics_history)
        self._pool_events: deque[PoolEvent] = deque(maxlen=settings.max_pool_events)
        self._pool_snapshot = PoolSnapshot()
        self._has_pool_baseline = False
        self._sequence = itertools.count()
        self._start_ms = self._now_ms()

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _wall_ms(self) -> float:
        return self._wall_clock() * 1000.0

    def _memory(self) -> float | None:
        if self._memory_probe is None or not self.settings.track_memory:
            return None
        return self._memory_probe()

    def _truncate(self, query: str) -> str:
        limit = self.settings.max_query_text_length
        if len(query) > limit:
            return f"{query[:limit]}{TRUNCATION_SUFFIX}"
        return query

    # Operation lifecycle

    def start(self, tool: str, query: str = "", database: str | None = None) -> str:
        """Open a record for a new operation and return its handle."""
        handle = f"q_{uuid4().hex}"
        record = OperationRecord(
            handle=handle,
            tool=tool,
            started_at=self._now_ms(),
            timestamp=self._wall_ms(),
            query=self._truncate(query or ""),
            database=database or DEFAULT_DATABASE,
            start_memory_mb=self._memory(),
        )

        with self._lock:
            self._open[handle] = record
            # Leaked handles (start without end) are dropped oldest first
            while len(self._open) > self.settings.max_metrics_history:
                leaked = next(iter(self._open))
                del self._open[leaked]
                logger.debug(f"Dropped in-flight operation {leaked}: too many open operations")

        return handle

    def end(self, handle: str, outcome: OperationOutcome) -> OperationRecord | None:
        """Finalize the open record for ``handle``; unknown handles are ignored."""
        with self._lock:
            record = self._open.pop(handle, None)

        if record is None:
            logger.debug(f"Ignoring end for unknown or already ended operation {handle}")
            return None

        ended_at = self._now_ms()
        record.ended_at = ended_at
        record.duration = max(0.0, ended_at - record.started_at)
        record.status = outcome.status
        record.row_count = outcome.row_count
        record.streamed = outcome.streamed
        record.error = outcome.error

        end_memory = self._memory()
        if end_memory is not None and record.start_memory_mb is not None:
            record.memory_delta_mb = end_memory - record.start_memory_mb

        self._finalize(record)
        return record

    def record_completed(
        self,
        tool: str,
        duration_ms: float,
        outcome: OperationOutcome,
        query: str = "",
        database: str | None = None,
        timestamp: float | None = None,
    ) -> OperationRecord | None:
        """Record an operation whose duration was measured by the caller.

        Non-numeric or non-finite durations are ignored and return None.
        """
        try:
            duration = float(duration_ms)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring {tool} operation with non-numeric duration {duration_ms!r}")
            return None
        if not math.isfinite(duration):
            logger.debug(f"Ignoring {tool} operation with non-finite duration {duration_ms!r}")
            return None

        now = self._now_ms()
        duration = max(0.0, duration)
        record = OperationRecord(
            handle=f"q_{uuid4().hex}",
            tool=tool,
            started_at=now - duration,
            timestamp=timestamp if timestamp is not None else self._wall_ms() - duration,
            query=self._truncate(query or ""),
            database=database or DEFAULT_DATABASE,
            ended_at=now,
            duration=duration,
            status=outcome.status,
            row_count=outcome.row_count,
            streamed=outcome.streamed,
            error=outcome.error,
        )
        self._finalize(record)
        return record

    def _finalize(self, record: OperationRecord) -> None:
        with self._lock:
            record.sequence = next(self._sequence)
            self._history.append(record)
            self._aggregator.observe(record)

    # Connection pool

    def record_pool_snapshot(self, snapshot: PoolSnapshot) -> PoolSnapshot:
        """Replace the current snapshot and derive delta events from the previous one."""
        now = self._now_ms()
        stamped = snapshot.stamped(timestamp=self._wall_ms(), uptime=now - self._start_ms)

        with self._lock:
            previous = self._pool_snapshot
            if self._has_pool_baseline:
                for event in _delta_events(previous, stamped, now):
                    self._pool_events.append(event)
            self._pool_snapshot = stamped
            self._has_pool_baseline = True
            self._trim_pool_events(now)

        return stamped

    def record_connection_event(self, kind: PoolEventKind, details: Mapping[str, Any]) -> None:
        """Append a single connection event and fold it into the current snapshot."""
        now = self._now_ms()
        event = PoolEvent(kind=kind, timestamp=now, details=dict(details))

        with self._lock:
            self._pool_events.append(event)
            current = self._pool_snapshot
            if kind == PoolEventKind.CONNECT:
                current = replace(
                    current,
                    total_connections=current.total_connections + 1,
                    active_connections=current.active_connections + 1,
                )
            elif kind == PoolEventKind.DISCONNECT:
                current = replace(current, active_connections=max(0, current.active_connections - 1))
            elif kind == PoolEventKind.ERROR:
                current = replace(current, errors=current.errors + 1)
            elif kind == PoolEventKind.RETRY:
                current = replace(current, retries=current.retries + 1)
            self._pool_snapshot = current.stamped(timestamp=self._wall_ms(), uptime=now - self._start_ms)
            self._has_pool_baseline = True
            self._trim_pool_events(now)

    def _trim_pool_events(self, now_ms: float) -> None:
        cutoff = now_ms - self.settings.pool_event_window_seconds * 1000.0
        while self._pool_events and self._pool_events[0].timestamp < cutoff:
            self._pool_events.popleft()

    # Reads and maintenance

    def current_pool_snapshot(self) -> PoolSnapshot:
        # Immutable snapshot: the reference read needs no lock
        return self._pool_snapshot

    def snapshot(self) -> RecorderState:
        """Copy the current state inside the critical section."""
        with self._lock:
            now = self._now_ms()
            overall, categories = self._aggregator.export()
            return RecorderState(
                history=tuple(self._history),
                in_flight=len(self._open),
                overall=overall,
                categories=categories,
                pool_snapshot=self._pool_snapshot,
                pool_events=tuple(self._pool_events),
                now_ms=now,
                uptime_ms=now - self._start_ms,
            )

    def configure(self, settings: MonitoringSettings) -> None:
        """Apply new settings, resizing ring buffers and keeping the newest entries."""
        with self._lock:
            self.settings = settings
            if self._history.maxlen != settings.max_metrics_history:
                self._history = deque(self._history, maxlen=settings.max_metrics_history)
            if self._pool_events.maxlen != settings.max_pool_events:
                self._pool_events = deque(self._pool_events, maxlen=settings.max_pool_events)
            while len(self._open) > settings.max_metrics_history:
                del self._open[next(iter(self._open))]

    def reset(self) -> None:
        with self._lock:
            self._open.clear()
            self._history.clear()
            self._pool_events.clear()
            self._pool_snapshot = PoolSnapshot()
            self._has_pool_baseline = False
            self._sequence = itertools.count()
            self._aggregator.reset()
            self._start_ms = self._now_ms()


def _delta_events(previous: PoolSnapshot, current: PoolSnapshot, now_ms: float) -> list[PoolEvent]:
    """Translate counter changes between two snapshots into pool events.

    Cumulative counters (errors, retries) that go backwards are treated as a
    counter reset and produce no event.
    """
    events: list[PoolEvent] = []

    connection_delta = current.total_connections - previous.total_connections
    if connection_delta > 0:
        events.append(PoolEvent(kind=PoolEventKind.CONNECT, timestamp=now_ms, count=connection_delta))
    elif connection_delta < 0:
        events.append(PoolEvent(kind=PoolEventKind.DISCONNECT, timestamp=now_ms, count=-connection_delta))

    error_delta = current.errors - previous.errors
    if error_delta > 0:
        events.append(PoolEvent(kind=PoolEventKind.ERROR, timestamp=now_ms, count=error_delta))

    retry_delta = current.retries - previous.retries
    if retry_delta > 0:
        events.append(PoolEvent(kind=PoolEventKind.RETRY, timestamp=now_ms, count=retry_delta))

    return events
