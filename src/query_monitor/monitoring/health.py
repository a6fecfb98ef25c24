"""
Connection Pool Health Evaluation
Derives a status, score and issue list from the current pool snapshot and
recent pool event rates.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from query_monitor.config import MonitoringSettings
from query_monitor.constants import (
    HEALTHY_SCORE_THRESHOLD,
    MAX_HEALTH_SCORE,
    WARNING_SCORE_THRESHOLD,
    PoolEventKind,
)
from query_monitor.logging import get_logger
from query_monitor.monitoring.records import PoolEvent, PoolSnapshot

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Pool health status levels."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


# Penalties subtracted from the maximum score, each applied at most once
HIGH_ERROR_COUNT_PENALTY = 30
NEAR_CAPACITY_PENALTY = 25
HIGH_PENDING_PENALTY = 25
NO_ACTIVE_CONNECTIONS_PENALTY = 60
ELEVATED_ERROR_RATE_PENALTY = 25
ELEVATED_RETRY_RATE_PENALTY = 25


@dataclass
class HealthAssessment:
    """Result of a pool health evaluation."""
    status: HealthStatus
    score: int
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "issues": list(self.issues),
            "score": self.score,
        }


@dataclass(frozen=True)
class PoolRates:
    """Pool event rates per minute over the recent window."""
    connection_rate: float = 0.0
    disconnect_rate: float = 0.0
    error_rate: float = 0.0
    retry_rate: float = 0.0
    total_events: int = 0
    window_minutes: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionRate": round(self.connection_rate, 2),
            "disconnectRate": round(self.disconnect_rate, 2),
            "errorRate": round(self.error_rate, 2),
            "retryRate": round(self.retry_rate, 2),
            "totalEvents": self.total_events,
            "windowMinutes": round(self.window_minutes, 2),
        }


def compute_pool_rates(events: Iterable[PoolEvent], now_ms: float, window_seconds: float) -> PoolRates:
    """Count events inside the window and express them per minute."""
    cutoff = now_ms - window_seconds * 1000.0
    counts = {kind: 0 for kind in PoolEventKind}
    for event in events:
        if event.timestamp >= cutoff:
            counts[event.kind] += event.count

    minutes = window_seconds / 60.0
    return PoolRates(
        connection_rate=counts[PoolEventKind.CONNECT] / minutes,
        disconnect_rate=counts[PoolEventKind.DISCONNECT] / minutes,
        error_rate=counts[PoolEventKind.ERROR] / minutes,
        retry_rate=counts[PoolEventKind.RETRY] / minutes,
        total_events=sum(counts.values()),
        window_minutes=minutes,
    )


def classify_score(score: int) -> HealthStatus:
    if score >= HEALTHY_SCORE_THRESHOLD:
        return HealthStatus.HEALTHY
    if score >= WARNING_SCORE_THRESHOLD:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


class PoolHealthEvaluator:
    """Additive penalty scoring of connection pool health.

    Every check runs independently; triggered checks subtract their penalty
    from 100 and contribute an issue in a fixed order. The score is floored
    at 0 and the status is derived from the final score only.
    """

    def __init__(self, settings: MonitoringSettings):
        self.settings = settings

    def evaluate(self, snapshot: PoolSnapshot, rates: PoolRates | None = None) -> HealthAssessment:
        rates = rates or PoolRates()
        penalties: list[tuple[int, str]] = []

        if snapshot.errors > self.settings.high_error_count:
            penalties.append((HIGH_ERROR_COUNT_PENALTY, "High error count detected"))

        if (
            snapshot.total_connections > 0
            and snapshot.pending_requests > 0
            and snapshot.utilization >= self.settings.high_utilization_ratio
        ):
            penalties.append((NEAR_CAPACITY_PENALTY, "Connection pool near capacity"))

        if snapshot.pending_requests > self.settings.high_pending_requests:
            penalties.append((HIGH_PENDING_PENALTY, "High number of pending requests"))

        if (
            snapshot.total_connections > 0
            and snapshot.active_connections == 0
            and snapshot.pending_requests > 0
        ):
            penalties.append((NO_ACTIVE_CONNECTIONS_PENALTY, "No active connections available"))

        if rates.error_rate > self.settings.pool_error_rate_per_minute:
            penalties.append((
                ELEVATED_ERROR_RATE_PENALTY,
                f"Elevated connection error rate: {rates.error_rate:.2f}/min",
            ))

        if rates.retry_rate > self.settings.pool_retry_rate_per_minute:
            penalties.append((
                ELEVATED_RETRY_RATE_PENALTY,
                f"Elevated connection retry rate: {rates.retry_rate:.2f}/min",
            ))

        score = max(0, MAX_HEALTH_SCORE - sum(penalty for penalty, _ in penalties))
        assessment = HealthAssessment(
            status=classify_score(score),
            score=score,
            issues=[issue for _, issue in penalties],
        )

        if assessment.status != HealthStatus.HEALTHY:
            logger.debug(f"Pool health {assessment.status.value} ({score}): {', '.join(assessment.issues)}")

        return assessment
