"""Schema definitions for monitored ad accounts and their notification owners.

``Account`` maps to the ``ad_accounts`` table. Accounts are created and
edited by the dashboard; the engine only reads them and never evaluates an
account whose ``is_active`` flag is off.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class Account:
    """A monitored Meta ad account.

    Attributes:
        id: Internal identifier (``ad_accounts.id``).
        account_id: Meta ad account id without the ``act_`` prefix.
        account_name: Display name, refreshed by ``sync-account-names``.
        cpl_threshold: Cost-per-lead ceiling in account currency (> 0).
        is_active: Soft-delete flag; inactive accounts are skipped.
        agency_id: Owning agency, which holds the Telegram chat id.
        created_at: When the account was registered.
    """

    id: str
    account_id: str
    account_name: str
    cpl_threshold: float
    is_active: bool = True
    agency_id: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.cpl_threshold <= 0:
            raise ValueError(
                f"cpl_threshold must be positive, got {self.cpl_threshold!r} "
                f"for account {self.account_id}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "cpl_threshold": self.cpl_threshold,
            "is_active": self.is_active,
            "agency_id": self.agency_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class NotificationDestination:
    """Where an account's alerts are delivered: its agency's Telegram chat."""

    agency_id: str
    agency_name: str
    chat_id: str
