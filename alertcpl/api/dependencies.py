"""
Dependency injection for FastAPI endpoints.

The reconciliation loop is a process-wide singleton: the scheduler, the
manual trigger and the status endpoint must all see the same run state.
"""

from alertcpl.accounts.repository import AccountRepository
from alertcpl.alerts.repository import AlertRepository, HistoryRepository
from alertcpl.engine.reconciliation import ReconciliationLoop, build_reconciliation_loop
from alertcpl.engine.scheduler import EngineScheduler
from alertcpl.storage.database import Database, close_database
from alertcpl.storage.database import get_database as _get_shared_database

# Global instances (initialized on first use)
_reconciliation_loop: ReconciliationLoop | None = None
_scheduler: EngineScheduler | None = None


async def get_database() -> Database:
    """Get the shared, connected Database."""
    return await _get_shared_database()


async def get_account_repository() -> AccountRepository:
    return AccountRepository(await get_database())


async def get_history_repository() -> HistoryRepository:
    return HistoryRepository(await get_database())


async def get_alert_repository() -> AlertRepository:
    return AlertRepository(await get_database())


async def get_reconciliation_loop() -> ReconciliationLoop:
    """
    Get the reconciliation loop instance.

    Wires the asyncpg repositories, the Graph API client and the Telegram
    channel on first use. Concurrent first callers share one instance, and
    with it one single-flight guard.
    """
    global _reconciliation_loop

    if _reconciliation_loop is None:
        db = await get_database()
        # another caller may have built it while the pool was connecting
        if _reconciliation_loop is None:
            _reconciliation_loop = build_reconciliation_loop(db)

    return _reconciliation_loop


def get_scheduler() -> EngineScheduler | None:
    """The running scheduler, or None when the engine is disabled."""
    return _scheduler


async def start_scheduler() -> EngineScheduler:
    global _scheduler

    if _scheduler is None:
        loop = await get_reconciliation_loop()
        if _scheduler is None:
            _scheduler = EngineScheduler(loop)
            _scheduler.start()

    return _scheduler


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _reconciliation_loop, _scheduler

    if _scheduler is not None:
        _scheduler.shutdown()
        _scheduler = None

    _reconciliation_loop = None

    await close_database()
