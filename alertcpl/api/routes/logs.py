"""Log endpoints: CPL history and alert records, newest first."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from alertcpl.alerts.repository import AlertRepository, HistoryRepository
from alertcpl.alerts.schemas import VALID_ALERT_KINDS
from alertcpl.api.auth import verify_api_key
from alertcpl.api.dependencies import get_alert_repository, get_history_repository
from alertcpl.api.models import (
    AlertLogItem,
    AlertLogsResponse,
    CplLogItem,
    CplLogsResponse,
    ErrorResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api")


@router.get(
    "/cpl-logs",
    response_model=CplLogsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List CPL history",
    description="List CPL history records, optionally for one account. Ordered by most recent first.",
)
async def list_cpl_logs(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum records to return"),
    account_id: str | None = Query(default=None, description="Filter by internal account id"),
    api_key: str = Depends(verify_api_key),
    history_repo: HistoryRepository = Depends(get_history_repository),
) -> CplLogsResponse:
    start_time = time.perf_counter()

    try:
        records = await history_repo.get_recent(account_id=account_id, limit=limit)
    except Exception as e:
        logger.error("Failed to list CPL logs", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list CPL logs: {str(e)}",
        )

    items = [CplLogItem(**r.to_dict()) for r in records]
    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info("CPL logs listed", total=len(items), account_id=account_id)

    return CplLogsResponse(
        logs=items,
        total=len(items),
        latency_ms=round(latency_ms, 2),
    )


@router.get(
    "/alerts",
    response_model=AlertLogsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List alerts",
    description=(
        "List alert records with optional filtering by account and alert "
        "type. Ordered by most recent first."
    ),
)
async def list_alert_logs(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum records to return"),
    account_id: str | None = Query(default=None, description="Filter by internal account id"),
    alert_type: str | None = Query(
        default=None,
        description="Filter by alert type: ZERO_LEADS_HIGH_SPEND, HIGH_COST_PER_LEAD",
    ),
    api_key: str = Depends(verify_api_key),
    alert_repo: AlertRepository = Depends(get_alert_repository),
) -> AlertLogsResponse:
    start_time = time.perf_counter()

    if alert_type and alert_type not in VALID_ALERT_KINDS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid alert_type {alert_type!r}. "
                f"Must be one of: {sorted(VALID_ALERT_KINDS)}"
            ),
        )

    try:
        records = await alert_repo.get_recent(
            account_id=account_id,
            kind=alert_type,
            limit=limit,
        )
    except Exception as e:
        logger.error("Failed to list alerts", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list alerts: {str(e)}",
        )

    items = [AlertLogItem(**r.to_dict()) for r in records]
    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Alerts listed",
        total=len(items),
        account_id=account_id,
        alert_type=alert_type,
        latency_ms=round(latency_ms, 2),
    )

    return AlertLogsResponse(
        alerts=items,
        total=len(items),
        latency_ms=round(latency_ms, 2),
    )
