"""
Performance Monitor
Records per-operation timing and connection pool state, and exposes the
overall, per-tool and pool views built from them.
"""
from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import psutil
from pydantic import ValidationError

from query_monitor.config import MonitoringSettings, get_settings
from query_monitor.constants import (
    DEFAULT_QUERY_LIMIT,
    PERFORMANCE_DISABLED_MESSAGE,
    POOL_DISABLED_MESSAGE,
    OperationStatus,
    PoolEventKind,
)
from query_monitor.exceptions import ConfigurationException
from query_monitor.logging import get_logger, setup_logging
from query_monitor.monitoring.aggregator import Aggregator
from query_monitor.monitoring.health import HealthAssessment, PoolHealthEvaluator, compute_pool_rates
from query_monitor.monitoring.recorder import EventRecorder, RecorderState
from query_monitor.monitoring.records import OperationOutcome, OperationRecord, PoolSnapshot
from query_monitor.monitoring.reporting import PerformanceReporter

logger = get_logger(__name__)

LOGGING_FIELDS = frozenset({"log_level", "log_format", "log_file_path"})


def process_memory_mb() -> float:
    """Resident memory of the current process in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


@dataclass
class OperationTracker:
    """Handle wrapper yielded by ``PerformanceMonitor.track``."""
    handle: str | None
    row_count: int | None = None
    streamed: bool = False


class PerformanceMonitor:
    """Thread-safe performance monitoring engine.

    Mutation methods (start, end, record_query, record_pool_snapshot,
    record_connection_event) log and absorb failures. Read methods return plain
    dictionaries ready for serialization.
    """

    def __init__(
        self,
        settings: MonitoringSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sampler: Callable[[], float] = random.random,
        memory_probe: Callable[[], float] | None = process_memory_mb,
    ):
        self._settings = settings or get_settings()
        self._enabled = self._settings.enabled
        self._sampler = sampler
        self._wall_clock = wall_clock

        self._aggregator = Aggregator(self._settings)
        self._recorder = EventRecorder(
            self._settings,
            self._aggregator,
            clock=clock,
            wall_clock=wall_clock,
            memory_probe=memory_probe,
        )
        self._health = PoolHealthEvaluator(self._settings)
        setup_logging(self._settings)

        logger.info(
            f"Performance monitor initialized (enabled={self._enabled}, "
            f"slow_query_threshold_ms={self._settings.slow_query_threshold_ms}, "
            f"max_metrics_history={self._settings.max_metrics_history})"
        )

    @property
    def settings(self) -> MonitoringSettings:
        return self._settings

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @property
    def pool_tracking_enabled(self) -> bool:
        return self._enabled and self._settings.track_pool_metrics

    def wall_time_ms(self) -> float:
        return self._wall_clock() * 1000.0

    # Recording

    def start(self, tool: str, query: str = "", database: str | None = None) -> str | None:
        """Record the start of an operation.

        Returns:
            Handle to pass to ``end``, or None when the operation is not tracked
            (monitoring disabled or not sampled).
        """
        if not self._enabled:
            return None
        try:
            if self._sampler() >= self._settings.sampling_rate:
                return None
            return self._recorder.start(str(tool), query=query, database=database)
        except Exception as e:
            logger.error(f"Failed to record operation start for {tool}: {e}", exc_info=True)
            return None

    def end(self, handle: str | None, outcome: OperationOutcome | Mapping[str, Any] | None = None) -> None:
        """Record the completion of an operation started with ``start``.

        Unknown, already ended or sentinel handles are ignored.
        """
        if not self._enabled or handle is None:
            return
        try:
            record = self._recorder.end(handle, OperationOutcome.coerce(outcome))
            if record is not None:
                self._after_finalize(record)
        except Exception as e:
            logger.error(f"Failed to record operation end for {handle}: {e}", exc_info=True)

    def record_query(
        self,
        tool: str,
        duration_ms: float,
        *,
        status: OperationStatus | str = OperationStatus.COMPLETED,
        row_count: int | None = None,
        streamed: bool = False,
        error: str | None = None,
        query: str = "",
        database: str | None = None,
        timestamp: float | None = None,
    ) -> None:
        """Record an operation whose duration the caller already measured."""
        if not self._enabled:
            return
        try:
            if self._sampler() >= self._settings.sampling_rate:
                return
            outcome = OperationOutcome.coerce({
                "status": status.value if isinstance(status, OperationStatus) else status,
                "rowCount": row_count,
                "streamed": streamed,
                "error": error,
            })
            record = self._recorder.record_completed(
                str(tool),
                duration_ms,
                outcome,
                query=query,
                database=database,
                timestamp=timestamp,
            )
            if record is not None:
                self._after_finalize(record)
        except Exception as e:
            logger.error(f"Failed to record query for {tool}: {e}", exc_info=True)

    def _after_finalize(self, record: OperationRecord) -> None:
        if record.is_slow(self._settings.slow_query_threshold_ms):
            logger.warning(
                f"Slow query detected: {record.duration:.0f}ms",
                extra={
                    "tool": record.tool,
                    "query": record.query,
                    "database": record.database,
                    "duration_ms": record.duration,
                    "row_count": record.row_count,
                },
            )

    def record_pool_snapshot(self, snapshot: PoolSnapshot | Mapping[str, Any]) -> None:
        """Record the current connection pool state."""
        if not self.pool_tracking_enabled:
            return
        try:
            self._recorder.record_pool_snapshot(PoolSnapshot.coerce(snapshot))
        except Exception as e:
            logger.error(f"Failed to record pool snapshot: {e}", exc_info=True)

    record_pool_metrics = record_pool_snapshot

    def record_connection_event(self, event: PoolEventKind | str, **details: Any) -> None:
        """Record a connect, disconnect, error or retry event."""
        if not self.pool_tracking_enabled:
            return
        try:
            kind = PoolEventKind(event)
        except ValueError:
            logger.debug(f"Ignoring unknown connection event: {event!r}")
            return
        try:
            self._recorder.record_connection_event(kind, details)
        except Exception as e:
            logger.error(f"Failed to record connection event {kind.value}: {e}", exc_info=True)

    @contextmanager
    def track(self, tool: str, query: str = "", database: str | None = None) -> Iterator[OperationTracker]:
        """Track the enclosed block as one operation.

        An exception raised inside the block, cancellation included, ends the
        operation with the error status and is re-raised.
        """
        tracker = OperationTracker(handle=self.start(tool, query=query, database=database))
        try:
            yield tracker
        except BaseException as e:
            self.end(tracker.handle, OperationOutcome(
                status=OperationStatus.ERROR,
                row_count=tracker.row_count,
                streamed=tracker.streamed,
                error=str(e) or type(e).__name__,
            ))
            raise
        else:
            self.end(tracker.handle, OperationOutcome(
                status=OperationStatus.COMPLETED,
                row_count=tracker.row_count,
                streamed=tracker.streamed,
            ))

    # Views

    def _state(self) -> RecorderState:
        return self._recorder.snapshot()

    def get_stats(self) -> dict[str, Any]:
        """Overall, recent and pool summary statistics."""
        if not self._enabled:
            return {"enabled": False, "message": PERFORMANCE_DISABLED_MESSAGE}

        state = self._state()
        return {
            "enabled": True,
            "uptime": round(state.uptime_ms, 2),
            "overall": self._aggregator.overall_view(state),
            "recent": self._aggregator.recent_view(state),
            "pool": state.pool_snapshot.to_dict(),
            "monitoring": {
                "totalQueriesTracked": len(state.history),
                "inFlightQueries": state.in_flight,
                "totalConnectionEvents": len(state.pool_events),
                "samplingRate": self._settings.sampling_rate,
                "slowQueryThreshold": self._settings.slow_query_threshold_ms,
            },
        }

    def get_query_stats(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        tool_filter: str | None = None,
        slow_only: bool = False,
    ) -> dict[str, Any]:
        """Query listing plus the lifetime per-tool breakdown.

        ``limit`` bounds the listings only; ``tool_filter`` and ``slow_only``
        shape ``queries`` while ``byTool`` and ``slowQueries`` cover every tool.
        """
        if not self._enabled:
            return {"enabled": False, "message": PERFORMANCE_DISABLED_MESSAGE}

        state = self._state()
        return {
            "enabled": True,
            "queries": self._aggregator.query_listing(
                state, limit, tool_filter=tool_filter, slow_only=slow_only
            ),
            "byTool": self._aggregator.by_tool_view(state),
            "slowQueries": self._aggregator.query_listing(state, limit, slow_only=True),
        }

    def get_pool_stats(self) -> dict[str, Any]:
        """Current pool snapshot, recent event rates and health verdict."""
        if not self.pool_tracking_enabled:
            return {"enabled": False, "message": POOL_DISABLED_MESSAGE}

        state = self._state()
        rates = compute_pool_rates(state.pool_events, state.now_ms, self._settings.pool_event_window_seconds)
        return {
            "enabled": True,
            "current": state.pool_snapshot.to_dict(),
            "recent": rates.to_dict(),
            "health": self._health.evaluate(state.pool_snapshot, rates).to_dict(),
        }

    def current_pool_snapshot(self) -> PoolSnapshot:
        """Most recent pool snapshot (all zeros before the first one)."""
        return self._recorder.current_pool_snapshot()

    def assess_pool_health(self) -> HealthAssessment:
        state = self._state()
        rates = compute_pool_rates(state.pool_events, state.now_ms, self._settings.pool_event_window_seconds)
        return self._health.evaluate(state.pool_snapshot, rates)

    def generate_report(self) -> dict[str, Any]:
        return PerformanceReporter(self).generate_report()

    # Maintenance

    def reset(self) -> None:
        """Clear all recorded data and restart the uptime clock."""
        self._recorder.reset()
        logger.info("Performance metrics reset")

    def update_config(self, **changes: Any) -> MonitoringSettings:
        """Validate and apply new settings.

        Raises:
            ConfigurationException: Unknown setting or invalid value.
        """
        unknown = sorted(set(changes) - set(MonitoringSettings.model_fields))
        if unknown:
            raise ConfigurationException(
                f"Unknown monitoring settings: {', '.join(unknown)}",
                details={"unknown": unknown},
            )

        try:
            new_settings = MonitoringSettings(**{**self._settings.model_dump(), **changes})
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid monitoring settings: {e.error_count()} validation error(s)",
                details={"errors": e.errors(include_url=False)},
            ) from e

        self._settings = new_settings
        self._aggregator.settings = new_settings
        self._health.settings = new_settings
        self._recorder.configure(new_settings)
        if LOGGING_FIELDS & changes.keys():
            setup_logging(new_settings)
        if "enabled" in changes:
            self._enabled = new_settings.enabled

        logger.info(f"Performance monitor configuration updated: {', '.join(sorted(changes))}")
        return new_settings

    def get_config(self) -> dict[str, Any]:
        return self._settings.to_dict()
