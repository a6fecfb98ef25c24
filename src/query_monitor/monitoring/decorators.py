"""
Decorators for automatic operation tracking.
"""
from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from query_monitor.monitoring.monitor import OperationTracker, PerformanceMonitor

T = TypeVar("T")


def _apply_result_size(tracker: OperationTracker, result: Any) -> None:
    if isinstance(result, (str, bytes)):
        return
    try:
        tracker.row_count = len(result)
    except TypeError:
        pass


def track_operation(monitor: PerformanceMonitor, tool: str | None = None, query: str = ""):
    """Decorator to track function execution as one operation."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = tool or func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with monitor.track(name, query=query) as tracker:
                result = func(*args, **kwargs)
                _apply_result_size(tracker, result)
                return result

        return wrapper
    return decorator


def track_async_operation(monitor: PerformanceMonitor, tool: str | None = None, query: str = ""):
    """Decorator to track coroutine execution as one operation."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = tool or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            with monitor.track(name, query=query) as tracker:
                result = await func(*args, **kwargs)
                _apply_result_size(tracker, result)
                return result

        return wrapper
    return decorator
