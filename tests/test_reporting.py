"""
Unit Tests for Performance Reporting
"""
from query_monitor.monitoring.reporting import PerformanceReporter


class TestPerformanceReporter:
    """Test report generation and recommendations."""

    def test_report_summary(self, monitor):
        monitor.record_query("execute_query", 100)
        monitor.record_query("execute_query", 300)
        monitor.record_pool_snapshot({"total": 5, "active": 1, "idle": 4})

        report = monitor.generate_report()

        assert report["enabled"] is True
        assert report["summary"] == {
            "totalQueries": 2,
            "avgQueryTime": 200,
            "slowQueries": 0,
            "errorRate": 0.0,
            "poolHealth": "healthy",
        }
        assert set(report["detailed"]) == {"overall", "recent", "pool", "queries"}
        assert report["recommendations"] == []

    def test_disabled_report(self, monitor):
        monitor.disable()
        report = PerformanceReporter(monitor).generate_report()

        assert report["enabled"] is False
        assert report["message"] == "Performance monitoring is disabled"
        assert "timestamp" in report

    def test_recommendations(self, monitor):
        monitor.record_query("execute_query", 3000, error="timeout")
        monitor.record_query("list_tables", 50)
        monitor.record_pool_snapshot({"total": 10, "active": 0, "pending": 1})

        recommendations = monitor.generate_report()["recommendations"]
        by_type = {item["type"]: item for item in recommendations}

        assert by_type["performance"]["metric"] == "avgQueryTime"
        assert by_type["reliability"]["value"] == 50.0
        assert by_type["infrastructure"]["issues"] == ["No active connections available"]
        assert by_type["optimization"]["tool"] == "execute_query"
        assert len(recommendations) == 4

    def test_pool_recommendation_skipped_when_pool_tracking_disabled(self, monitor_factory):
        monitor = monitor_factory(track_pool_metrics=False)
        monitor.record_query("execute_query", 10)

        report = monitor.generate_report()

        assert report["summary"]["poolHealth"] == "unknown"
        assert report["recommendations"] == []
