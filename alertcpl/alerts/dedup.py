"""Suppression-window gate for repeat alerts."""

import logging
from datetime import datetime, timedelta

from alertcpl.alerts.config import AlertConfig
from alertcpl.alerts.repository import AlertRepository

logger = logging.getLogger(__name__)


class DedupGate:
    """Decides whether an incident was already logged inside the suppression window.

    The window slides on the creation time of earlier alert records: a
    record created at T suppresses the same (ad, kind, account) until
    T + window, however many cycles run in between. Existence of any
    qualifying record is enough.
    """

    def __init__(
        self,
        alert_repo: AlertRepository,
        config: AlertConfig | None = None,
    ) -> None:
        self._repo = alert_repo
        self._config = config or AlertConfig()

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self._config.suppression_window_seconds)

    async def should_suppress(
        self,
        line_item_id: str,
        alert_kind: str,
        account_id: str,
        now: datetime,
    ) -> bool:
        """Return True if a matching alert was created at or after ``now - window``.

        Query errors propagate; the caller decides how to fail.
        """
        since = now - self.window
        found = await self._repo.find_recent(line_item_id, alert_kind, account_id, since)
        if found:
            logger.debug(
                "Suppressing %s for ad %s (account %s): alerted since %s",
                alert_kind, line_item_id, account_id, since.isoformat(),
            )
        return found
