"""Liveness and readiness of the AlertCPL process."""

import time

from fastapi import APIRouter, Depends

from alertcpl import __version__
from alertcpl.api.dependencies import get_database, get_reconciliation_loop, get_scheduler
from alertcpl.api.models import ComponentHealth, HealthResponse
from alertcpl.api.routes.engine import build_engine_status
from alertcpl.config.settings import get_settings
from alertcpl.engine.reconciliation import ReconciliationLoop
from alertcpl.engine.scheduler import EngineScheduler
from alertcpl.storage.database import Database

router = APIRouter()


async def _check_database(db: Database) -> ComponentHealth:
    started = time.perf_counter()
    details: dict[str, str] = {}
    try:
        ok = await db.health_check()
    except Exception as e:
        ok = False
        details["error"] = str(e)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    return ComponentHealth(
        status="healthy" if ok else "unhealthy",
        latency_ms=elapsed_ms,
        details=details,
    )


def _credential(configured: bool, env_var: str) -> ComponentHealth:
    if configured:
        return ComponentHealth(status="healthy")
    return ComponentHealth(status="unconfigured", details={"missing": env_var})


def _scheduler_health(scheduler: EngineScheduler | None) -> ComponentHealth:
    if scheduler is None or not scheduler.running:
        return ComponentHealth(status="disabled")
    return ComponentHealth(status="healthy")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the database, credential configuration and engine state.",
)
async def health_check(
    db: Database = Depends(get_database),
    loop: ReconciliationLoop = Depends(get_reconciliation_loop),
    scheduler: EngineScheduler | None = Depends(get_scheduler),
) -> HealthResponse:
    """
    ``unhealthy`` when PostgreSQL is unreachable, ``degraded`` when either
    API credential is missing (cycles run but cannot fetch or notify),
    otherwise ``healthy``. No API key required.
    """
    settings = get_settings()

    components = {
        "database": await _check_database(db),
        "meta_api": _credential(settings.meta_configured, "META_ACCESS_TOKEN"),
        "telegram": _credential(settings.telegram_configured, "TELEGRAM_BOT_TOKEN"),
        "scheduler": _scheduler_health(scheduler),
    }

    if components["database"].status != "healthy":
        overall = "unhealthy"
    elif not (settings.meta_configured and settings.telegram_configured):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        components=components,
        meta_configured=settings.meta_configured,
        telegram_configured=settings.telegram_configured,
        engine=build_engine_status(loop, scheduler),
        version=__version__,
    )
