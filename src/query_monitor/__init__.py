"""Query performance monitoring: operation timing, per-tool statistics and pool health."""

from .config import MonitoringSettings, get_settings, settings
from .constants import OperationStatus, PoolEventKind, Timeframe
from .exceptions import (
    ConfigurationException,
    MonitoringException,
    MonitoringOperationError,
    NotInitializedError,
)
from .logging import get_logger, setup_logging
from .monitoring import HealthStatus, PerformanceMonitor, PoolSnapshot
from .tools import PerformanceTools

__version__ = "1.0.0"

__all__ = [
    "settings",
    "MonitoringSettings",
    "get_settings",
    "OperationStatus",
    "PoolEventKind",
    "Timeframe",
    "MonitoringException",
    "ConfigurationException",
    "NotInitializedError",
    "MonitoringOperationError",
    "get_logger",
    "setup_logging",
    "PerformanceMonitor",
    "PoolSnapshot",
    "HealthStatus",
    "PerformanceTools",
]
