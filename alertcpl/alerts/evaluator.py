"""Threshold evaluation for metric samples.

Pure functions: given a sample and its account, decide whether the ad
violates the account's CPL threshold and whether the sample belongs in
the CPL history. No I/O; persistence, dedup and delivery live in the
reconciliation loop.

Rules, first match wins:
1. spend == 0: dormant ad, nothing to do.
2. leads == 0: ZERO_LEADS_HIGH_SPEND once spend reaches the threshold.
3. leads > 0: HIGH_COST_PER_LEAD when spend / leads exceeds the threshold.
"""

import dataclasses
import logging
import math
from datetime import datetime

from alertcpl.accounts.schemas import Account
from alertcpl.alerts.schemas import (
    HIGH_COST_PER_LEAD,
    ZERO_LEADS_HIGH_SPEND,
    AlertDecision,
    MetricHistoryRecord,
)
from alertcpl.insights.schemas import MetricSample

logger = logging.getLogger(__name__)


def _usable(value: float) -> bool:
    return math.isfinite(value) and value >= 0


def sanitize_sample(sample: MetricSample) -> MetricSample:
    """Clamp negative or non-finite spend and leads to 0.

    Metrics feeds are noisy; a bad value is a data-quality warning,
    not a reason to fail the account.
    """
    spend = sample.spend
    leads = sample.leads
    if _usable(spend) and _usable(leads):
        return sample

    logger.warning(
        "Clamping invalid metrics for ad %s (spend=%s, leads=%s)",
        sample.ad_id, spend, leads,
    )
    return dataclasses.replace(
        sample,
        spend=float(spend) if _usable(spend) else 0.0,
        leads=int(leads) if _usable(leads) else 0,
    )


def evaluate(sample: MetricSample, account: Account) -> AlertDecision | None:
    """Map a sample and its account threshold to an alert decision.

    Args:
        sample: Spend and leads for one ad.
        account: Owning account; supplies the CPL threshold.

    Returns:
        AlertDecision or None.
    """
    sample = sanitize_sample(sample)
    threshold = account.cpl_threshold

    if sample.spend == 0:
        return None

    if sample.leads == 0:
        if sample.spend >= threshold:
            return AlertDecision(
                kind=ZERO_LEADS_HIGH_SPEND,
                cpl=0.0,
                threshold=threshold,
                spend=sample.spend,
                leads=0,
            )
        return None

    cpl = sample.spend / sample.leads
    if cpl > threshold:
        return AlertDecision(
            kind=HIGH_COST_PER_LEAD,
            cpl=cpl,
            threshold=threshold,
            spend=sample.spend,
            leads=sample.leads,
        )
    return None


def build_history_record(
    sample: MetricSample,
    account: Account,
    checked_at: datetime,
) -> MetricHistoryRecord | None:
    """Build the CPL history snapshot for a sample, if it has one.

    Only samples with spend > 0 and leads > 0 have a defined CPL; all
    others return None.
    """
    sample = sanitize_sample(sample)
    if sample.spend == 0 or sample.leads == 0:
        return None

    return MetricHistoryRecord(
        account_id=account.id,
        campaign_name=sample.campaign_name,
        adset_name=sample.adset_name,
        ad_name=sample.ad_name,
        ad_id=sample.ad_id,
        spend=sample.spend,
        leads=sample.leads,
        cpl=sample.spend / sample.leads,
        checked_at=checked_at,
    )
