"""Schema definitions for alert decisions, CPL history and alert records.

``MetricHistoryRecord`` maps 1:1 to the ``cpl_logs`` table and
``AlertRecord`` to ``alert_logs``. An alert record is written before its
notification is attempted, so a row without ``sent_at`` is an incident
that was logged but never confirmed delivered.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AlertKind = Literal[
    "ZERO_LEADS_HIGH_SPEND",
    "HIGH_COST_PER_LEAD",
]

ZERO_LEADS_HIGH_SPEND: AlertKind = "ZERO_LEADS_HIGH_SPEND"
HIGH_COST_PER_LEAD: AlertKind = "HIGH_COST_PER_LEAD"

VALID_ALERT_KINDS: frozenset[str] = frozenset({
    ZERO_LEADS_HIGH_SPEND,
    HIGH_COST_PER_LEAD,
})


def _validate_kind(kind: str) -> None:
    if kind not in VALID_ALERT_KINDS:
        raise ValueError(
            f"Invalid alert kind {kind!r}. "
            f"Must be one of: {sorted(VALID_ALERT_KINDS)}"
        )


@dataclass(frozen=True)
class AlertDecision:
    """Outcome of evaluating one sample against its account threshold.

    ``cpl`` is 0 for ``ZERO_LEADS_HIGH_SPEND``; there is no cost per lead
    without leads.
    """

    kind: str
    cpl: float
    threshold: float
    spend: float
    leads: int

    def __post_init__(self) -> None:
        _validate_kind(self.kind)


@dataclass
class MetricHistoryRecord:
    """A CPL snapshot for one ad in one cycle.

    Attributes:
        account_id: Internal account id (``ad_accounts.id``).
        campaign_name: Campaign display name.
        adset_name: Ad set display name.
        ad_name: Ad display name.
        ad_id: Meta ad id.
        spend: Spend over the reporting window.
        leads: Lead count over the reporting window (> 0).
        cpl: spend / leads.
        checked_at: When the cycle observed the sample.
        record_id: UUID4 identifier.
    """

    account_id: str
    campaign_name: str
    adset_name: str
    ad_name: str
    ad_id: str
    spend: float
    leads: int
    cpl: float
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape served by ``/api/cpl-logs``."""
        return {
            "id": self.record_id,
            "ad_account_id": self.account_id,
            "campaign_name": self.campaign_name,
            "adset_name": self.adset_name,
            "ad_name": self.ad_name,
            "ad_meta_id": self.ad_id,
            "spend": self.spend,
            "leads": self.leads,
            "calculated_cpl": self.cpl,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class AlertRecord:
    """A logged alert incident from the alert_logs table.

    Attributes:
        account_id: Internal account id.
        agency_id: Owning agency at the time of the alert, if any.
        kind: ZERO_LEADS_HIGH_SPEND or HIGH_COST_PER_LEAD.
        ad_id: Meta ad id the incident is about.
        campaign_name: Campaign display name.
        adset_name: Ad set display name.
        ad_name: Ad display name.
        spend: Spend at evaluation time.
        leads: Leads at evaluation time.
        cpl: Computed CPL (0 for zero-lead incidents).
        threshold: Account threshold at evaluation time.
        message: Rendered notification text; empty until attached.
        record_id: UUID4 identifier.
        created_at: Insert time; the suppression window slides on this.
        sent_at: Set after a confirmed delivery.
    """

    account_id: str
    kind: str
    ad_id: str
    campaign_name: str
    adset_name: str
    ad_name: str
    spend: float
    leads: int
    cpl: float
    threshold: float
    agency_id: str | None = None
    message: str = ""
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sent_at: datetime | None = None

    def __post_init__(self) -> None:
        _validate_kind(self.kind)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape served by ``/api/alerts``."""
        return {
            "id": self.record_id,
            "ad_account_id": self.account_id,
            "agency_id": self.agency_id,
            "alert_type": self.kind,
            "ad_meta_id": self.ad_id,
            "campaign_name": self.campaign_name,
            "adset_name": self.adset_name,
            "ad_name": self.ad_name,
            "spend": self.spend,
            "leads": self.leads,
            "calculated_cpl": self.cpl,
            "cpl_threshold": self.threshold,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
