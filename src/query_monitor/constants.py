"""
Monitoring constants and enumerations.
Central location for fixed messages and enumerated values.
"""

from enum import Enum
from typing import Final


class OperationStatus(str, Enum):
    """Terminal and transient states of a tracked operation."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class Timeframe(str, Enum):
    """Accepted labels for the performance statistics view."""

    ALL = "all"
    RECENT = "recent"
    SESSION = "session"


class PoolEventKind(str, Enum):
    """Connection pool event kinds."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"
    RETRY = "retry"


# Query listing
DEFAULT_QUERY_LIMIT: Final[int] = 50
DEFAULT_DATABASE: Final[str] = "default"
TRUNCATION_SUFFIX: Final[str] = "..."

# Health scoring
MAX_HEALTH_SCORE: Final[int] = 100
HEALTHY_SCORE_THRESHOLD: Final[int] = 80
WARNING_SCORE_THRESHOLD: Final[int] = 50

# Facade messages
NOT_INITIALIZED_MESSAGE: Final[str] = "Performance monitoring is not initialized"
PERFORMANCE_DISABLED_MESSAGE: Final[str] = "Performance monitoring is disabled"
POOL_DISABLED_MESSAGE: Final[str] = "Connection pool monitoring is disabled"

# Operation names used in wrapped failures
OP_PERFORMANCE_STATS: Final[str] = "get performance statistics"
OP_QUERY_PERFORMANCE: Final[str] = "get query performance"
OP_CONNECTION_HEALTH: Final[str] = "get connection health"
