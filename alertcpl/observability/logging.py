"""
Structured logging configuration using structlog.

JSON lines in production, colored console output in development. Both
structlog loggers (engine, API, CLI) and stdlib loggers (repositories,
Graph API and Telegram clients) render through the same processor chain,
so cycle_id, request_id and trace ids appear on every line.

Graph API access tokens and Telegram bot tokens travel in URLs; the
``redact_secrets`` processor masks them before anything is rendered.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import Processor

from alertcpl.config.settings import get_settings
from alertcpl.observability.tracing import add_trace_context

REDACTED = "[REDACTED]"

_SECRET_PATTERNS = (
    # https://api.telegram.org/bot123456:ABC-def/sendMessage
    re.compile(r"(/bot)\d+:[A-Za-z0-9_-]+"),
    # ...?access_token=EAAB...&fields=...
    re.compile(r"(access_token=)[^&\s\"']+"),
    # oauth/access_token?...&client_secret=...&fb_exchange_token=...
    re.compile(r"((?:client_secret|fb_exchange_token)=)[^&\s\"']+"),
)

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "apscheduler")

_handler: logging.Handler | None = None


def _mask(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return text


def redact_secrets(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor that masks bot tokens and access tokens in string values."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _mask(value)
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Evaluating account", account_id="1431395567675793")
    """
    global _handler

    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(formatter)
    root.addHandler(_handler)
    root.setLevel(getattr(logging, settings.log_level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
