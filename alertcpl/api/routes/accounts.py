"""Account endpoints for the dashboard: listing and threshold updates."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, status

from alertcpl.accounts.repository import AccountRepository
from alertcpl.accounts.schemas import Account
from alertcpl.api.auth import verify_api_key
from alertcpl.api.dependencies import get_account_repository
from alertcpl.api.models import (
    AccountItem,
    AccountsResponse,
    ErrorResponse,
    ThresholdUpdateRequest,
    ThresholdUpdateResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api")


def _to_item(account: Account) -> AccountItem:
    return AccountItem(**account.to_dict())


@router.get(
    "/accounts",
    response_model=AccountsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List accounts",
    description="List every monitored ad account, newest first.",
)
async def list_accounts(
    api_key: str = Depends(verify_api_key),
    account_repo: AccountRepository = Depends(get_account_repository),
) -> AccountsResponse:
    start_time = time.perf_counter()

    try:
        accounts = await account_repo.list_all()
    except Exception as e:
        logger.error("Failed to list accounts", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list accounts: {str(e)}",
        )

    items = [_to_item(a) for a in accounts]
    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info("Accounts listed", total=len(items), latency_ms=round(latency_ms, 2))

    return AccountsResponse(
        accounts=items,
        total=len(items),
        latency_ms=round(latency_ms, 2),
    )


@router.patch(
    "/accounts/{account_id}/threshold",
    response_model=ThresholdUpdateResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Account not found"},
        422: {"model": ErrorResponse, "description": "Invalid threshold"},
    },
    summary="Update CPL threshold",
    description="Set a new cost-per-lead threshold for an account by its Meta ad account id.",
)
async def update_threshold(
    body: ThresholdUpdateRequest,
    account_id: str = Path(..., description="Meta ad account id (without act_)"),
    api_key: str = Depends(verify_api_key),
    account_repo: AccountRepository = Depends(get_account_repository),
) -> ThresholdUpdateResponse:
    updated = await account_repo.update_threshold(account_id, body.new_threshold)
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account {account_id} not found",
        )

    logger.info(
        "CPL threshold updated",
        account_id=account_id,
        new_threshold=updated.cpl_threshold,
    )
    return ThresholdUpdateResponse(
        account_id=updated.account_id,
        new_threshold=updated.cpl_threshold,
    )


@router.get(
    "/accounts/{account_id}",
    response_model=AccountItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Get account",
    description="Fetch one monitored ad account by its Meta ad account id.",
)
async def get_account(
    account_id: str = Path(..., description="Meta ad account id (without act_)"),
    api_key: str = Depends(verify_api_key),
    account_repo: AccountRepository = Depends(get_account_repository),
) -> AccountItem:
    account = await account_repo.get_by_external_id(account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account {account_id} not found",
        )
    return _to_item(account)
