"""Schema for ad-level metric samples returned by the insights client."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MetricSample:
    """Spend and lead totals for one ad over the reporting window.

    Produced fresh every cycle; never cached. ``spend`` and ``leads`` are
    non-negative when the feed is well-behaved, but the evaluator clamps
    rather than trusting that.
    """

    campaign_name: str
    adset_name: str
    ad_name: str
    ad_id: str
    spend: float
    leads: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_name": self.campaign_name,
            "adset_name": self.adset_name,
            "ad_name": self.ad_name,
            "ad_id": self.ad_id,
            "spend": self.spend,
            "leads": self.leads,
        }


@dataclass(frozen=True)
class LongLivedToken:
    """Result of exchanging a short-lived user token at ``/oauth/access_token``.

    ``expires_in`` is in seconds; Meta omits it for tokens that do not expire.
    """

    access_token: str
    expires_in: int | None = None
    token_type: str | None = None

    @property
    def expires_in_days(self) -> int | None:
        if self.expires_in is None:
            return None
        return self.expires_in // 86400
