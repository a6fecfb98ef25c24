"""
Performance monitoring tools.

Read-only operations exposed to the tool/dispatch layer:
- get_performance_stats
- get_query_performance
- get_connection_health

Each operation validates its arguments, answers with a "disabled" payload when
monitoring is switched off, raises NotInitializedError when no monitor was ever
attached and wraps any other failure in MonitoringOperationError.
"""
from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from query_monitor.constants import (
    DEFAULT_QUERY_LIMIT,
    OP_CONNECTION_HEALTH,
    OP_PERFORMANCE_STATS,
    OP_QUERY_PERFORMANCE,
    PERFORMANCE_DISABLED_MESSAGE,
    POOL_DISABLED_MESSAGE,
    Timeframe,
)
from query_monitor.exceptions import MonitoringOperationError, NotInitializedError
from query_monitor.logging import get_logger
from query_monitor.monitoring.monitor import PerformanceMonitor

logger = get_logger(__name__)


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "get_performance_stats",
        "description": "Get overall performance statistics and health summary",
        "inputSchema": {
            "type": "object",
            "properties": {
                "timeframe": {
                    "type": "string",
                    "description": (
                        'Time period for stats: "recent" (recent window), '
                        '"session" (since startup), "all" (default)'
                    ),
                    "enum": [t.value for t in Timeframe],
                },
            },
        },
    },
    {
        "name": "get_query_performance",
        "description": "Get detailed query performance breakdown by tool",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": f"Maximum number of queries to return (optional, defaults to {DEFAULT_QUERY_LIMIT})",
                },
                "tool_filter": {"type": "string", "description": "Filter by specific tool name (optional)"},
                "slow_only": {
                    "type": "boolean",
                    "description": "Only return slow queries (optional, defaults to false)",
                },
            },
        },
    },
    {
        "name": "get_connection_health",
        "description": "Get connection pool health metrics and diagnostics",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


class EngineAvailability(Enum):
    """State of the monitoring engine as seen by the tools."""
    ABSENT = "absent"
    DISABLED = "disabled"
    ACTIVE = "active"


@dataclass(frozen=True)
class EngineReference:
    """Tagged reference to the monitoring engine."""
    availability: EngineAvailability
    monitor: PerformanceMonitor | None = None

    @classmethod
    def of(cls, monitor: PerformanceMonitor | None) -> EngineReference:
        if monitor is None:
            return cls(EngineAvailability.ABSENT)
        if not monitor.enabled:
            return cls(EngineAvailability.DISABLED, monitor)
        return cls(EngineAvailability.ACTIVE, monitor)

    def require(self) -> EngineReference:
        """Raise NotInitializedError for an absent engine."""
        if self.availability is EngineAvailability.ABSENT:
            raise NotInitializedError()
        return self


def normalize_timeframe(timeframe: Any) -> str:
    """Map any unrecognized or missing timeframe to "all"."""
    if isinstance(timeframe, Timeframe):
        return timeframe.value
    if isinstance(timeframe, str):
        try:
            return Timeframe(timeframe.strip().lower()).value
        except ValueError:
            pass
    return Timeframe.ALL.value


def normalize_limit(limit: Any) -> int:
    """Return a positive integer limit, falling back to the default."""
    if isinstance(limit, bool):
        return DEFAULT_QUERY_LIMIT
    if isinstance(limit, str):
        try:
            limit = float(limit.strip())
        except ValueError:
            return DEFAULT_QUERY_LIMIT
    if isinstance(limit, float):
        if not math.isfinite(limit):
            return DEFAULT_QUERY_LIMIT
        limit = int(limit)
    if isinstance(limit, int) and limit > 0:
        return limit
    return DEFAULT_QUERY_LIMIT


def normalize_tool_filter(tool_filter: Any) -> str | None:
    if isinstance(tool_filter, str) and tool_filter.strip():
        return tool_filter.strip()
    return None


def _disabled(message: str) -> dict[str, Any]:
    return {"enabled": False, "message": message}


class PerformanceTools:
    """Read operations over a PerformanceMonitor for the tool layer."""

    def __init__(self, monitor: PerformanceMonitor | None = None):
        self.monitor = monitor

    def reference(self) -> EngineReference:
        return EngineReference.of(self.monitor)

    def get_performance_stats(self, timeframe: Any = None) -> dict[str, Any]:
        """Overall performance statistics labelled with the requested timeframe."""
        ref = self.reference().require()
        if ref.availability is EngineAvailability.DISABLED:
            return _disabled(PERFORMANCE_DISABLED_MESSAGE)

        try:
            stats = ref.monitor.get_stats()
            if not stats.get("enabled", False):
                return _disabled(PERFORMANCE_DISABLED_MESSAGE)
            return {
                "enabled": True,
                "timeframe": normalize_timeframe(timeframe),
                "uptime": stats.get("uptime"),
                "overall": stats.get("overall"),
                "recent": stats.get("recent"),
                "pool": stats.get("pool"),
                "monitoring": stats.get("monitoring"),
            }
        except Exception as e:
            logger.error(f"Failed to {OP_PERFORMANCE_STATS}: {e}", exc_info=True)
            raise MonitoringOperationError(OP_PERFORMANCE_STATS, str(e)) from e

    def get_query_performance(
        self,
        limit: Any = None,
        tool_filter: Any = None,
        slow_only: Any = False,
    ) -> dict[str, Any]:
        """Most recent queries plus the per-tool breakdown."""
        ref = self.reference().require()
        if ref.availability is EngineAvailability.DISABLED:
            return _disabled(PERFORMANCE_DISABLED_MESSAGE)

        limit = normalize_limit(limit)
        tool_filter = normalize_tool_filter(tool_filter)
        slow_only = bool(slow_only)

        try:
            stats = ref.monitor.get_query_stats(limit, tool_filter=tool_filter, slow_only=slow_only)
            if not stats.get("enabled", False):
                return _disabled(PERFORMANCE_DISABLED_MESSAGE)
            return {
                "enabled": True,
                "limit": limit,
                "tool_filter": tool_filter,
                "slow_only": slow_only,
                "queries": stats.get("queries", []),
                "byTool": stats.get("byTool", {}),
                "slowQueries": stats.get("slowQueries", []),
            }
        except Exception as e:
            logger.error(f"Failed to {OP_QUERY_PERFORMANCE}: {e}", exc_info=True)
            raise MonitoringOperationError(OP_QUERY_PERFORMANCE, str(e)) from e

    def get_connection_health(self) -> dict[str, Any]:
        """Connection pool snapshot, recent rates and health verdict."""
        ref = self.reference().require()
        if ref.availability is EngineAvailability.DISABLED:
            return _disabled(POOL_DISABLED_MESSAGE)

        try:
            stats = ref.monitor.get_pool_stats()
            if not stats.get("enabled", False):
                return _disabled(POOL_DISABLED_MESSAGE)
            return {
                "enabled": True,
                "current": stats.get("current"),
                "recent": stats.get("recent"),
                "health": stats.get("health"),
            }
        except Exception as e:
            logger.error(f"Failed to {OP_CONNECTION_HEALTH}: {e}", exc_info=True)
            raise MonitoringOperationError(OP_CONNECTION_HEALTH, str(e)) from e

    def call(self, tool_name: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Dispatch a tool call by name.

        Raises:
            KeyError: Unknown tool name.
        """
        arguments = arguments or {}
        tool_map: dict[str, Callable[[], dict[str, Any]]] = {
            "get_performance_stats": lambda: self.get_performance_stats(arguments.get("timeframe")),
            "get_query_performance": lambda: self.get_query_performance(
                arguments.get("limit"),
                arguments.get("tool_filter"),
                arguments.get("slow_only", False),
            ),
            "get_connection_health": self.get_connection_health,
        }

        if tool_name not in tool_map:
            raise KeyError(f"Tool '{tool_name}' not found. Available tools: {list(tool_map.keys())}")

        return tool_map[tool_name]()
