"""
Monitoring Records
Data structures for tracked operations, pool state and running aggregates.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from query_monitor.constants import OperationStatus, PoolEventKind


def _round(value: float) -> float:
    return round(value, 2)


@dataclass
class OperationRecord:
    """A single tracked operation.

    Attributes:
        handle: Opaque identifier issued by start.
        tool: Category label of the operation.
        started_at: Monotonic start time (ms), used for duration.
        timestamp: Wall-clock start time (epoch ms), used for ordering in reports.
        query: Truncated query text.
        database: Database the operation ran against.
        ended_at: Monotonic end time (ms), absent while in flight.
        duration: ended_at - started_at, absent while in flight.
        status: running until finalized, then completed or error.
        row_count: Result size, if known.
        streamed: Whether results were streamed incrementally.
        error: Error message for failed operations.
        memory_delta_mb: Process memory change across the operation.
        sequence: Finalization order, assigned when the record enters history.
    """

    handle: str
    tool: str
    started_at: float
    timestamp: float
    query: str = ""
    database: str = "default"
    ended_at: float | None = None
    duration: float | None = None
    status: OperationStatus = OperationStatus.RUNNING
    row_count: int | None = None
    streamed: bool = False
    error: str | None = None
    start_memory_mb: float | None = None
    memory_delta_mb: float | None = None
    sequence: int = -1

    @property
    def is_finalized(self) -> bool:
        return self.duration is not None

    @property
    def is_error(self) -> bool:
        return self.status == OperationStatus.ERROR

    def is_slow(self, threshold_ms: float) -> bool:
        return self.duration is not None and self.duration >= threshold_ms

    def to_listing(self) -> dict[str, Any]:
        """Entry shape used in query listings."""
        return {
            "tool": self.tool,
            "duration": _round(self.duration or 0.0),
            "status": self.status.value,
            "rowCount": self.row_count,
            "streaming": self.streamed,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class OperationOutcome:
    """Result metadata handed to end()."""

    status: OperationStatus = OperationStatus.COMPLETED
    row_count: int | None = None
    streamed: bool = False
    error: str | None = None

    @classmethod
    def coerce(cls, outcome: OperationOutcome | Mapping[str, Any] | None) -> OperationOutcome:
        """Build an outcome from a mapping, tolerating missing or odd fields.

        Recognized keys: status, error, resultSize / rowCount / row_count,
        streamed / streaming. A present error forces the error status.
        """
        if outcome is None:
            return cls()
        if isinstance(outcome, OperationOutcome):
            return outcome
        if not isinstance(outcome, Mapping):
            return cls()

        error = outcome.get("error")
        if error is not None and not isinstance(error, str):
            error = str(error)

        raw_status = outcome.get("status")
        try:
            status = OperationStatus(raw_status) if raw_status is not None else OperationStatus.COMPLETED
        except ValueError:
            status = OperationStatus.COMPLETED
        if status == OperationStatus.RUNNING:
            status = OperationStatus.COMPLETED
        if error:
            status = OperationStatus.ERROR

        row_count = None
        for key in ("resultSize", "rowCount", "row_count"):
            value = outcome.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                row_count = value
                break

        streamed = bool(outcome.get("streamed", outcome.get("streaming", False)))

        return cls(status=status, row_count=row_count, streamed=streamed, error=error)


@dataclass
class CategoryAggregate:
    """Incrementally maintained statistics for one tool."""

    tool: str
    count: int = 0
    avg_time: float = 0.0
    errors: int = 0
    slow_queries: int = 0

    def observe(self, duration: float, is_error: bool, is_slow: bool) -> None:
        self.count += 1
        self.avg_time += (duration - self.avg_time) / self.count
        if is_error:
            self.errors += 1
        if is_slow:
            self.slow_queries += 1

    @property
    def error_rate(self) -> float:
        return (self.errors / self.count) * 100 if self.count else 0.0

    @property
    def slow_query_rate(self) -> float:
        return (self.slow_queries / self.count) * 100 if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avgTime": _round(self.avg_time),
            "errors": self.errors,
            "slowQueries": self.slow_queries,
            "errorRate": _round(self.error_rate),
            "slowQueryRate": _round(self.slow_query_rate),
        }


@dataclass
class OverallAggregate:
    """Lifetime statistics, unaffected by history eviction."""

    total_queries: int = 0
    avg_query_time: float = 0.0
    total_query_time: float = 0.0
    slow_queries: int = 0
    errors: int = 0
    max_query_time: float = 0.0
    min_query_time: float | None = None

    def observe(self, duration: float, is_error: bool, is_slow: bool) -> None:
        self.total_queries += 1
        self.avg_query_time += (duration - self.avg_query_time) / self.total_queries
        self.total_query_time += duration
        self.max_query_time = max(self.max_query_time, duration)
        self.min_query_time = duration if self.min_query_time is None else min(self.min_query_time, duration)
        if is_error:
            self.errors += 1
        if is_slow:
            self.slow_queries += 1

    @property
    def error_rate(self) -> float:
        return (self.errors / self.total_queries) * 100 if self.total_queries else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQueries": self.total_queries,
            "avgQueryTime": _round(self.avg_query_time),
            "slowQueries": self.slow_queries,
            "errorRate": _round(self.error_rate),
            "maxQueryTime": _round(self.max_query_time),
            "minQueryTime": _round(self.min_query_time or 0.0),
            "totalQueryTime": _round(self.total_query_time),
        }


@dataclass(frozen=True)
class PoolSnapshot:
    """Connection pool state at a point in time."""

    total_connections: int = 0
    active_connections: int = 0
    idle_connections: int = 0
    pending_requests: int = 0
    errors: int = 0
    retries: int = 0
    timestamp: float | None = None
    uptime: float | None = None

    _ALIASES = {
        "total_connections": ("totalConnections", "total"),
        "active_connections": ("activeConnections", "active"),
        "idle_connections": ("idleConnections", "idle"),
        "pending_requests": ("pendingRequests", "pending"),
        "errors": ("errorCount",),
        "retries": ("retryCount",),
    }

    @classmethod
    def coerce(cls, snapshot: PoolSnapshot | Mapping[str, Any]) -> PoolSnapshot:
        """Build a snapshot from a mapping using snake_case, camelCase or short keys.

        Missing counters default to 0; negative or non-integer values are clamped to 0.
        """
        if isinstance(snapshot, PoolSnapshot):
            return snapshot
        if not isinstance(snapshot, Mapping):
            raise TypeError(f"Unsupported pool snapshot type: {type(snapshot).__name__}")

        values: dict[str, int] = {}
        for name, aliases in cls._ALIASES.items():
            raw = snapshot.get(name)
            for alias in aliases:
                if raw is not None:
                    break
                raw = snapshot.get(alias)
            values[name] = _non_negative_int(raw)

        return cls(**values)

    def stamped(self, timestamp: float, uptime: float) -> PoolSnapshot:
        return replace(self, timestamp=timestamp, uptime=uptime)

    @property
    def utilization(self) -> float:
        if self.total_connections <= 0:
            return 0.0
        return self.active_connections / self.total_connections

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "totalConnections": self.total_connections,
            "activeConnections": self.active_connections,
            "idleConnections": self.idle_connections,
            "pendingRequests": self.pending_requests,
            "errors": self.errors,
            "retries": self.retries,
        }
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        if self.uptime is not None:
            data["uptime"] = _round(self.uptime)
        return data


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


@dataclass(frozen=True)
class PoolEvent:
    """A delta-style pool event contributing to recent rates."""

    kind: PoolEventKind
    timestamp: float
    count: int = 1
    details: dict[str, Any] = field(default_factory=dict)
