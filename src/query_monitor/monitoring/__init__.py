"""
Query Performance Monitoring Module
Provides operation timing, per-tool aggregation and connection pool health.
"""
from query_monitor.monitoring.aggregator import Aggregator
from query_monitor.monitoring.decorators import track_async_operation, track_operation
from query_monitor.monitoring.health import (
    HealthAssessment,
    HealthStatus,
    PoolHealthEvaluator,
    PoolRates,
    classify_score,
    compute_pool_rates,
)
from query_monitor.monitoring.monitor import OperationTracker, PerformanceMonitor, process_memory_mb
from query_monitor.monitoring.recorder import EventRecorder, RecorderState
from query_monitor.monitoring.records import (
    CategoryAggregate,
    OperationOutcome,
    OperationRecord,
    OverallAggregate,
    PoolEvent,
    PoolSnapshot,
)
from query_monitor.monitoring.reporting import PerformanceReporter
from query_monitor.monitoring.sqlalchemy_pool import instrument_engine, snapshot_from_pool

__all__ = [
    # Engine
    "PerformanceMonitor",
    "OperationTracker",
    "EventRecorder",
    "RecorderState",
    "Aggregator",
    "process_memory_mb",

    # Records
    "OperationRecord",
    "OperationOutcome",
    "CategoryAggregate",
    "OverallAggregate",
    "PoolSnapshot",
    "PoolEvent",

    # Health
    "HealthStatus",
    "HealthAssessment",
    "PoolHealthEvaluator",
    "PoolRates",
    "classify_score",
    "compute_pool_rates",

    # Reporting
    "PerformanceReporter",

    # Integrations
    "track_operation",
    "track_async_operation",
    "instrument_engine",
    "snapshot_from_pool",
]
