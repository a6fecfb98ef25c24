"""
Performance Reporting
Combines the monitor's views into a single report with recommendations.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from query_monitor.monitoring.monitor import PerformanceMonitor

HIGH_AVG_QUERY_TIME_MS = 1000
HIGH_ERROR_RATE_PERCENT = 5
HIGH_TOOL_AVG_TIME_MS = 2000


class PerformanceReporter:
    """Generate performance reports and recommendations."""

    def __init__(self, monitor: PerformanceMonitor):
        self.monitor = monitor

    def generate_report(self) -> dict[str, Any]:
        """Generate a comprehensive performance report."""
        stats = self.monitor.get_stats()
        query_stats = self.monitor.get_query_stats()
        pool_stats = self.monitor.get_pool_stats()

        if not stats.get("enabled"):
            return {
                "timestamp": self.monitor.wall_time_ms(),
                "enabled": False,
                "message": stats.get("message"),
            }

        overall = stats["overall"]
        health = pool_stats.get("health") or {}

        return {
            "timestamp": self.monitor.wall_time_ms(),
            "enabled": True,
            "uptime": stats["uptime"],
            "summary": {
                "totalQueries": overall["totalQueries"],
                "avgQueryTime": round(overall["avgQueryTime"]),
                "slowQueries": overall["slowQueries"],
                "errorRate": overall["errorRate"],
                "poolHealth": health.get("status", "unknown"),
            },
            "detailed": {
                "overall": overall,
                "recent": stats["recent"],
                "pool": pool_stats,
                "queries": query_stats,
            },
            "recommendations": self.generate_recommendations(stats, query_stats, pool_stats),
        }

    def generate_recommendations(
        self,
        stats: dict[str, Any],
        query_stats: dict[str, Any],
        pool_stats: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Derive recommendations from the three views."""
        recommendations: list[dict[str, Any]] = []
        overall = stats.get("overall", {})

        if overall.get("avgQueryTime", 0) > HIGH_AVG_QUERY_TIME_MS:
            recommendations.append({
                "type": "performance",
                "priority": "high",
                "message": "Average query time is high. Consider query optimization or indexing.",
                "metric": "avgQueryTime",
                "value": overall["avgQueryTime"],
            })

        if overall.get("errorRate", 0) > HIGH_ERROR_RATE_PERCENT:
            recommendations.append({
                "type": "reliability",
                "priority": "critical",
                "message": "High error rate detected. Check query validation and database connectivity.",
                "metric": "errorRate",
                "value": overall["errorRate"],
            })

        health = pool_stats.get("health") if pool_stats.get("enabled") else None
        if health and health["status"] != "healthy":
            recommendations.append({
                "type": "infrastructure",
                "priority": "medium",
                "message": "Connection pool health issues detected.",
                "issues": health["issues"],
            })

        if query_stats.get("enabled"):
            for tool, tool_stats in query_stats.get("byTool", {}).items():
                if tool_stats["avgTime"] > HIGH_TOOL_AVG_TIME_MS:
                    recommendations.append({
                        "type": "optimization",
                        "priority": "medium",
                        "message": f"Tool '{tool}' has high average execution time.",
                        "metric": "toolAvgTime",
                        "tool": tool,
                        "value": tool_stats["avgTime"],
                    })

        return recommendations
