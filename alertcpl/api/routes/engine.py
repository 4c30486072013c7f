"""Engine endpoints: run-state inspection and the manual trigger."""

import structlog
from fastapi import APIRouter, Depends

from alertcpl.api.auth import verify_api_key, verify_trigger_secret
from alertcpl.api.dependencies import get_reconciliation_loop, get_scheduler
from alertcpl.api.models import EngineStatusResponse, ErrorResponse, TriggerResponse
from alertcpl.engine.reconciliation import ReconciliationLoop
from alertcpl.engine.scheduler import EngineScheduler

logger = structlog.get_logger(__name__)
router = APIRouter()

TRIGGER_ACK = "CPL check triggered"


def build_engine_status(
    loop: ReconciliationLoop,
    scheduler: EngineScheduler | None,
) -> EngineStatusResponse:
    started = loop.last_run_started_at
    next_run = scheduler.next_run_time if scheduler else None
    last = loop.last_result
    return EngineStatusResponse(
        state=loop.state.value,
        last_run_started_at=started.isoformat() if started else None,
        scheduler_running=scheduler.running if scheduler else False,
        next_run_at=next_run.isoformat() if next_run else None,
        last_result=last.to_dict() if last else None,
    )


@router.get(
    "/engine/status",
    response_model=EngineStatusResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Engine status",
    description="Current run state, last run start time and the last cycle summary.",
)
async def engine_status(
    api_key: str = Depends(verify_api_key),
    loop: ReconciliationLoop = Depends(get_reconciliation_loop),
    scheduler: EngineScheduler | None = Depends(get_scheduler),
) -> EngineStatusResponse:
    return build_engine_status(loop, scheduler)


@router.post(
    "/engine/trigger",
    response_model=TriggerResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid trigger secret"},
        503: {"model": ErrorResponse, "description": "Manual trigger disabled"},
    },
    summary="Trigger a reconciliation cycle",
    description=(
        "Runs one cycle and returns a fixed acknowledgement. Per-account "
        "outcomes, including an already running cycle, are only visible in "
        "logs, metrics and /engine/status."
    ),
)
async def trigger_engine(
    _: None = Depends(verify_trigger_secret),
    loop: ReconciliationLoop = Depends(get_reconciliation_loop),
) -> TriggerResponse:
    result = await loop.run()
    logger.info("Manual reconciliation trigger", status=result.status.value, cycle_id=result.cycle_id)
    return TriggerResponse(message=TRIGGER_ACK)
