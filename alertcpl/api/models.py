"""
Request and response models for the AlertCPL API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )


# Health and engine models


class ComponentHealth(BaseModel):
    """Health of a single dependency."""

    status: str = Field(..., description="healthy, unhealthy, unconfigured or disabled")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict[str, Any] = Field(default_factory=dict, description="Extra diagnostic details")


class EngineStatusResponse(BaseModel):
    """Current reconciliation engine state."""

    state: str = Field(..., description="Run state: idle or running")
    last_run_started_at: str | None = Field(
        default=None,
        description="When the most recent cycle started (ISO format)",
    )
    scheduler_running: bool = Field(
        default=False,
        description="Whether the periodic trigger is active",
    )
    next_run_at: str | None = Field(
        default=None,
        description="Next scheduled cycle (ISO format)",
    )
    last_result: dict[str, Any] | None = Field(
        default=None,
        description="Summary of the most recent completed cycle",
    )


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-dependency health",
    )
    meta_configured: bool = Field(default=False, description="Whether a Graph API token is set")
    telegram_configured: bool = Field(default=False, description="Whether a bot token is set")
    engine: EngineStatusResponse | None = Field(default=None, description="Engine state")
    version: str = Field(..., description="Service version")


class TriggerResponse(BaseModel):
    """Fixed acknowledgement for the manual trigger."""

    message: str = Field(..., description="Acknowledgement text")


# Account models


class AccountItem(BaseModel):
    """Single monitored ad account."""

    id: str = Field(..., description="Internal account identifier")
    account_id: str = Field(..., description="Meta ad account id (without act_)")
    account_name: str = Field(..., description="Display name")
    cpl_threshold: float = Field(..., description="Cost-per-lead threshold")
    is_active: bool = Field(..., description="Whether the engine evaluates this account")
    agency_id: str | None = Field(default=None, description="Owning agency")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")


class AccountsResponse(BaseModel):
    """Response model for listing accounts."""

    accounts: list[AccountItem] = Field(..., description="Accounts, newest first")
    total: int = Field(..., description="Number of accounts returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class ThresholdUpdateRequest(BaseModel):
    """Request body for updating an account's CPL threshold."""

    model_config = ConfigDict(populate_by_name=True)

    new_threshold: float = Field(
        ...,
        gt=0,
        alias="newThreshold",
        description="New cost-per-lead threshold (> 0)",
    )


class ThresholdUpdateResponse(BaseModel):
    """Response model for a threshold update."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True, description="Whether the update was applied")
    account_id: str = Field(..., alias="accountId", description="Meta ad account id")
    new_threshold: float = Field(..., alias="newThreshold", description="Stored threshold")


# Log models


class CplLogItem(BaseModel):
    """Single CPL history record."""

    id: str = Field(..., description="Record identifier")
    ad_account_id: str = Field(..., description="Internal account identifier")
    campaign_name: str = Field(..., description="Campaign name")
    adset_name: str = Field(..., description="Ad set name")
    ad_name: str = Field(..., description="Ad name")
    ad_meta_id: str = Field(..., description="Meta ad id")
    spend: float = Field(..., description="Spend over the reporting window")
    leads: int = Field(..., description="Leads over the reporting window")
    calculated_cpl: float = Field(..., description="spend / leads")
    checked_at: str = Field(..., description="When the sample was observed (ISO format)")


class CplLogsResponse(BaseModel):
    """Response model for listing CPL history."""

    logs: list[CplLogItem] = Field(..., description="History records, newest first")
    total: int = Field(..., description="Number of records returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertLogItem(BaseModel):
    """Single alert record."""

    id: str = Field(..., description="Alert identifier")
    ad_account_id: str = Field(..., description="Internal account identifier")
    agency_id: str | None = Field(default=None, description="Owning agency")
    alert_type: str = Field(..., description="ZERO_LEADS_HIGH_SPEND or HIGH_COST_PER_LEAD")
    ad_meta_id: str = Field(..., description="Meta ad id")
    campaign_name: str = Field(..., description="Campaign name")
    adset_name: str = Field(..., description="Ad set name")
    ad_name: str = Field(..., description="Ad name")
    spend: float = Field(..., description="Spend at evaluation time")
    leads: int = Field(..., description="Leads at evaluation time")
    calculated_cpl: float = Field(..., description="CPL at evaluation time (0 for zero-lead alerts)")
    cpl_threshold: float = Field(..., description="Threshold at evaluation time")
    message: str = Field(default="", description="Rendered notification text")
    created_at: str = Field(..., description="When the alert was logged (ISO format)")
    sent_at: str | None = Field(default=None, description="When delivery was confirmed (ISO format)")


class AlertLogsResponse(BaseModel):
    """Response model for listing alert records."""

    alerts: list[AlertLogItem] = Field(..., description="Alert records, newest first")
    total: int = Field(..., description="Number of records returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")
