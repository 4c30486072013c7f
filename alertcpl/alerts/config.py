"""Alert engine configuration.

Controls the anti-spam suppression window, the insights reporting window,
and the markup dialect alert messages are rendered in. All settings can be
overridden via ``ALERTS_*`` environment variables.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for alert evaluation and delivery."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Suppress repeat (ad, kind, account) alerts created within this window
    suppression_window_seconds: int = Field(
        default=7200,
        ge=60,
        description="Seconds during which a repeat alert for the same ad and kind is suppressed",
    )

    reporting_window: str = Field(
        default="today",
        min_length=1,
        description="Graph API date_preset used when fetching insights",
    )

    markup: Literal["markdown_v2", "html", "plain"] = Field(
        default="markdown_v2",
        description="Markup dialect for rendered alert messages",
    )
