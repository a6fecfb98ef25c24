"""
Aggregator
Maintains running lifetime aggregates and derives the overall, recent and
per-tool views from recorded operations.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from query_monitor.config import MonitoringSettings
from query_monitor.monitoring.records import CategoryAggregate, OperationRecord, OverallAggregate

if TYPE_CHECKING:
    from query_monitor.monitoring.recorder import RecorderState


def _round(value: float) -> float:
    return round(value, 2)


class Aggregator:
    """Running aggregates plus pure view builders.

    ``observe`` is only called by the recorder inside its critical section.
    The view methods never mutate anything; they work on a RecorderState copy.
    """

    def __init__(self, settings: MonitoringSettings):
        self.settings = settings
        self._overall = OverallAggregate()
        self._categories: dict[str, CategoryAggregate] = {}

    def observe(self, record: OperationRecord) -> None:
        duration = record.duration or 0.0
        is_slow = record.is_slow(self.settings.slow_query_threshold_ms)

        self._overall.observe(duration, record.is_error, is_slow)

        category = self._categories.get(record.tool)
        if category is None:
            category = self._categories[record.tool] = CategoryAggregate(tool=record.tool)
        category.observe(duration, record.is_error, is_slow)

    def export(self) -> tuple[OverallAggregate, dict[str, CategoryAggregate]]:
        """Copies of the running aggregates."""
        return (
            replace(self._overall),
            {tool: replace(stats) for tool, stats in self._categories.items()},
        )

    def reset(self) -> None:
        self._overall = OverallAggregate()
        self._categories = {}

    # Views

    def overall_view(self, state: RecorderState) -> dict[str, Any]:
        return state.overall.to_dict()

    def recent_records(self, state: RecorderState) -> list[OperationRecord]:
        """The most recent finalized records, at most ``recent_window_size``."""
        records = list(state.history[-self.settings.recent_window_size:])

        if self.settings.recent_window_seconds is not None:
            cutoff = state.now_ms - self.settings.recent_window_seconds * 1000.0
            records = [r for r in records if r.ended_at is not None and r.ended_at >= cutoff]

        return records

    def recent_view(self, state: RecorderState) -> dict[str, Any]:
        records = self.recent_records(state)
        if not records:
            return {
                "count": 0,
                "avgDuration": 0.0,
                "maxDuration": 0.0,
                "minDuration": 0.0,
                "errorRate": 0.0,
                "slowQueryRate": 0.0,
            }

        threshold = self.settings.slow_query_threshold_ms
        durations = [r.duration or 0.0 for r in records]
        errors = sum(1 for r in records if r.is_error)
        slow = sum(1 for r in records if r.is_slow(threshold))
        count = len(records)

        return {
            "count": count,
            "avgDuration": _round(sum(durations) / count),
            "maxDuration": _round(max(durations)),
            "minDuration": _round(min(durations)),
            "errorRate": _round(errors / count * 100),
            "slowQueryRate": _round(slow / count * 100),
        }

    def by_tool_view(self, state: RecorderState) -> dict[str, dict[str, Any]]:
        return {
            tool: stats.to_dict()
            for tool, stats in sorted(state.categories.items())
            if stats.count > 0
        }

    def query_listing(
        self,
        state: RecorderState,
        limit: int,
        tool_filter: str | None = None,
        slow_only: bool = False,
    ) -> list[dict[str, Any]]:
        """Most-recent-first listing of retained operations.

        Ordered by start timestamp descending; equal timestamps put the
        later-finalized record first.
        """
        threshold = self.settings.slow_query_threshold_ms
        records = [
            r for r in state.history
            if (tool_filter is None or r.tool == tool_filter)
            and (not slow_only or r.is_slow(threshold))
        ]
        records.sort(key=lambda r: (r.timestamp, r.sequence), reverse=True)
        return [r.to_listing() for r in records[:limit]]
