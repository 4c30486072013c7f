"""Account repository: active-account enumeration, destination lookup, and dashboard edits.

Follows the asyncpg repository pattern used for alerts and CPL history.
"""

import logging
from typing import Any

from alertcpl.accounts.schemas import Account, NotificationDestination
from alertcpl.storage.database import Database

logger = logging.getLogger(__name__)


class AccountRepository:
    """Reads and edits rows of the ``ad_accounts`` and ``agencies`` tables."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_active(self) -> list[Account]:
        """List accounts the engine should evaluate, oldest first.

        Errors propagate: a failure here fails the whole reconciliation cycle.
        """
        sql = """
            SELECT * FROM ad_accounts
            WHERE is_active = TRUE
            ORDER BY created_at ASC, id ASC
        """
        rows = await self._db.fetch(sql)
        return [_row_to_account(row) for row in rows]

    async def list_all(self) -> list[Account]:
        """List every account (active or not), newest first."""
        rows = await self._db.fetch(
            "SELECT * FROM ad_accounts ORDER BY created_at DESC"
        )
        return [_row_to_account(row) for row in rows]

    async def get_by_external_id(self, account_id: str) -> Account | None:
        """Look up an account by its Meta ad account id."""
        row = await self._db.fetchrow(
            "SELECT * FROM ad_accounts WHERE account_id = $1", account_id,
        )
        if row is None:
            return None
        return _row_to_account(row)

    async def update_threshold(self, account_id: str, threshold: float) -> Account | None:
        """Set a new CPL threshold.

        Args:
            account_id: Meta ad account id.
            threshold: New threshold, must be positive.

        Returns:
            The updated account, or None if no account matched.
        """
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold!r}")

        sql = """
            UPDATE ad_accounts SET cpl_threshold = $2
            WHERE account_id = $1
            RETURNING *
        """
        row = await self._db.fetchrow(sql, account_id, threshold)
        if row is None:
            return None
        return _row_to_account(row)

    async def update_name(self, internal_id: str, account_name: str) -> bool:
        """Overwrite an account's display name. Returns True if a row changed."""
        sql = """
            UPDATE ad_accounts SET account_name = $2
            WHERE id = $1 AND account_name IS DISTINCT FROM $2
            RETURNING id
        """
        return await self._db.fetchval(sql, internal_id, account_name) is not None

    async def get_notification_destination(
        self, internal_id: str,
    ) -> NotificationDestination | None:
        """Resolve the Telegram chat an account's alerts go to.

        Returns None when the account has no agency, the agency row is
        missing, or the agency has no chat id configured.
        """
        sql = """
            SELECT ag.id, ag.name, ag.telegram_chat_id
            FROM ad_accounts a
            JOIN agencies ag ON ag.id = a.agency_id
            WHERE a.id = $1
        """
        row = await self._db.fetchrow(sql, internal_id)
        if row is None:
            return None

        chat_id = row["telegram_chat_id"]
        if not chat_id:
            return None

        return NotificationDestination(
            agency_id=row["id"],
            agency_name=row["name"] or "",
            chat_id=str(chat_id),
        )


def _row_to_account(row: Any) -> Account:
    """Convert an asyncpg Record to an Account."""
    return Account(
        id=str(row["id"]),
        account_id=str(row["account_id"]),
        account_name=row.get("account_name") or "",
        cpl_threshold=float(row["cpl_threshold"]),
        is_active=row.get("is_active", True),
        agency_id=row.get("agency_id"),
        created_at=row.get("created_at"),
    )
