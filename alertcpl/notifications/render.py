"""
Alert message rendering.

A pure function from structured alert fields to message text in one of
the markup dialects the Telegram Bot API accepts. Campaign, ad set and ad
names come from advertisers and are escaped so they cannot inject
formatting; numbers are escaped too, since ``.`` and ``-`` are reserved
in MarkdownV2.
"""

import html
import re
from dataclasses import dataclass
from typing import Literal

from alertcpl.alerts.schemas import ZERO_LEADS_HIGH_SPEND, AlertRecord

MarkupDialect = Literal["plain", "markdown_v2", "html"]

HEADER = "🚨 AlertCPL Warning!"

REASONS = {
    "ZERO_LEADS_HIGH_SPEND": "Spend reached the threshold with zero leads",
    "HIGH_COST_PER_LEAD": "Cost per lead is above the threshold",
}

# Characters Telegram reserves in MarkdownV2 text, plus the escape itself
_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")

_PARSE_MODES: dict[str, str | None] = {
    "plain": None,
    "markdown_v2": "MarkdownV2",
    "html": "HTML",
}


@dataclass(frozen=True)
class AlertMessage:
    """Fields shown in an alert notification."""

    kind: str
    campaign_name: str
    adset_name: str
    ad_name: str
    spend: float
    leads: int
    cpl: float
    threshold: float

    @classmethod
    def from_record(cls, record: AlertRecord) -> "AlertMessage":
        return cls(
            kind=record.kind,
            campaign_name=record.campaign_name,
            adset_name=record.adset_name,
            ad_name=record.ad_name,
            spend=record.spend,
            leads=record.leads,
            cpl=record.cpl,
            threshold=record.threshold,
        )


def escape_markdown_v2(text: str) -> str:
    """Backslash-escape every MarkdownV2 reserved character."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def escape_html(text: str) -> str:
    return html.escape(text, quote=False)


def parse_mode_for(dialect: str) -> str | None:
    """Telegram ``parse_mode`` for a dialect; None means plain text."""
    try:
        return _PARSE_MODES[dialect]
    except KeyError:
        raise ValueError(
            f"Unknown markup dialect {dialect!r}. Must be one of: {sorted(_PARSE_MODES)}"
        ) from None


def _money(value: float) -> str:
    return f"${value:,.2f}"


def render_alert_message(message: AlertMessage, dialect: str = "markdown_v2") -> str:
    """
    Render an alert as notification text.

    Args:
        message: Structured alert fields
        dialect: "plain", "markdown_v2" or "html"

    Returns:
        Message text safe to send with ``parse_mode_for(dialect)``
    """
    parse_mode_for(dialect)

    if dialect == "markdown_v2":
        escape = escape_markdown_v2
        header = f"*{escape(HEADER)}*"
    elif dialect == "html":
        escape = escape_html
        header = f"<b>{escape(HEADER)}</b>"
    else:
        def escape(text: str) -> str:
            return text
        header = HEADER

    cpl = "N/A" if message.kind == ZERO_LEADS_HIGH_SPEND else _money(message.cpl)
    reason = REASONS.get(message.kind, message.kind)

    lines = [
        header,
        escape(reason),
        "",
        f"Campaign: {escape(message.campaign_name)}",
        f"Ad Set: {escape(message.adset_name)}",
        f"Ad: {escape(message.ad_name)}",
        "",
        f"CPL: {escape(cpl)}",
        f"Threshold: {escape(_money(message.threshold))}",
        f"Spend: {escape(_money(message.spend))}",
        f"Leads: {escape(str(message.leads))}",
    ]
    return "\n".join(lines)
