"""
SQLAlchemy connection pool integration.
Feeds pool snapshots and connection events from a SQLAlchemy engine into a
PerformanceMonitor through the engine and pool event APIs.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import Pool

from query_monitor.constants import PoolEventKind
from query_monitor.logging import get_logger
from query_monitor.monitoring.records import PoolSnapshot

if TYPE_CHECKING:
    from query_monitor.monitoring.monitor import PerformanceMonitor

logger = get_logger(__name__)


def _pool_counter(pool: Pool, name: str) -> int:
    method = getattr(pool, name, None)
    if not callable(method):
        return 0
    try:
        return max(0, int(method()))
    except (TypeError, ValueError):
        return 0


def snapshot_from_pool(pool: Pool, base: PoolSnapshot | None = None) -> PoolSnapshot:
    """Build a PoolSnapshot from a SQLAlchemy pool.

    Connection counts come from the pool; pending requests and the cumulative
    error and retry counters are carried over from ``base``. Pools without
    checkout accounting (NullPool, StaticPool) report zero connections.
    """
    base = base or PoolSnapshot()
    active = _pool_counter(pool, "checkedout")
    idle = _pool_counter(pool, "checkedin")
    return PoolSnapshot(
        total_connections=active + idle,
        active_connections=active,
        idle_connections=idle,
        pending_requests=base.pending_requests,
        errors=base.errors,
        retries=base.retries,
    )


def instrument_engine(engine: Engine, monitor: PerformanceMonitor) -> Callable[[], None]:
    """Register pool and engine listeners that report to ``monitor``.

    New connections are reported as connect events. Closed connections are
    counted once, by the drop in total connections on the next checkout or
    checkin snapshot.

    Returns:
        Callable that removes every registered listener.
    """
    pool = engine.pool

    def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        monitor.record_connection_event(PoolEventKind.CONNECT)

    def on_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        monitor.record_pool_snapshot(snapshot_from_pool(pool, base=monitor.current_pool_snapshot()))

    def on_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        # Fires before the pool takes the connection back
        snapshot = snapshot_from_pool(pool, base=monitor.current_pool_snapshot())
        monitor.record_pool_snapshot(replace(
            snapshot,
            active_connections=max(0, snapshot.active_connections - 1),
            idle_connections=min(snapshot.total_connections, snapshot.idle_connections + 1),
        ))

    def on_handle_error(exception_context: Any) -> None:
        monitor.record_connection_event(
            PoolEventKind.ERROR,
            error=str(exception_context.original_exception),
        )

    listeners: list[tuple[Any, str, Callable[..., None]]] = [
        (pool, "connect", on_connect),
        (pool, "checkout", on_checkout),
        (pool, "checkin", on_checkin),
        (engine, "handle_error", on_handle_error),
    ]
    for target, name, fn in listeners:
        event.listen(target, name, fn)

    logger.info(f"Pool monitoring listeners registered for {engine.url.render_as_string(hide_password=True)}")

    def remove() -> None:
        for target, name, fn in listeners:
            if event.contains(target, name, fn):
                event.remove(target, name, fn)
        logger.info("Pool monitoring listeners removed")

    return remove
