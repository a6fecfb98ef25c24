"""
Pytest Configuration and Fixtures
Provides deterministic clocks, settings and monitor fixtures for all tests.
"""
from collections.abc import Callable
from typing import Any

import pytest

from query_monitor.config import MonitoringSettings
from query_monitor.monitoring.monitor import PerformanceMonitor


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )


def make_settings(**overrides: Any) -> MonitoringSettings:
    """Settings for tests: memory tracking off, everything else overridable."""
    values: dict[str, Any] = {"track_memory": False}
    values.update(overrides)
    return MonitoringSettings(**values)


def make_monitor(
    clock: FakeClock | None = None,
    wall_clock: FakeClock | None = None,
    sampler: Callable[[], float] | None = None,
    **overrides: Any,
) -> PerformanceMonitor:
    """Monitor wired to fake clocks that tracks every operation."""
    return PerformanceMonitor(
        make_settings(**overrides),
        clock=clock or FakeClock(100.0),
        wall_clock=wall_clock or FakeClock(1_700_000_000.0),
        sampler=sampler or (lambda: 0.0),
        memory_probe=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic clock starting at 100 seconds."""
    return FakeClock(100.0)


@pytest.fixture
def wall_clock() -> FakeClock:
    """Wall clock starting at a fixed epoch."""
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def settings() -> MonitoringSettings:
    """Default test settings."""
    return make_settings()


@pytest.fixture
def monitor(clock, wall_clock) -> PerformanceMonitor:
    """Enabled monitor on fake clocks."""
    return make_monitor(clock=clock, wall_clock=wall_clock)


@pytest.fixture
def settings_factory() -> Callable[..., MonitoringSettings]:
    """Build test settings with overrides."""
    return make_settings


@pytest.fixture
def monitor_factory(clock, wall_clock) -> Callable[..., PerformanceMonitor]:
    """Build monitors sharing the fixture clocks, with settings overrides."""
    def factory(**overrides: Any) -> PerformanceMonitor:
        overrides.setdefault("clock", clock)
        overrides.setdefault("wall_clock", wall_clock)
        return make_monitor(**overrides)
    return factory
