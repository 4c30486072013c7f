"""Alert message rendering and delivery."""

from alertcpl.notifications.channels import NotificationError, NotificationSink, TelegramChannel
from alertcpl.notifications.render import (
    AlertMessage,
    MarkupDialect,
    escape_html,
    escape_markdown_v2,
    parse_mode_for,
    render_alert_message,
)

__all__ = [
    "AlertMessage",
    "MarkupDialect",
    "NotificationError",
    "NotificationSink",
    "TelegramChannel",
    "escape_html",
    "escape_markdown_v2",
    "parse_mode_for",
    "render_alert_message",
]
