"""Repositories for CPL history and alert records.

Follows the asyncpg repository pattern: each repository wraps a
``Database`` and converts rows to dataclasses. Write failures propagate
to the caller, which decides whether they are fatal for the unit of work.
"""

import logging
from datetime import datetime
from typing import Any

from alertcpl.alerts.schemas import AlertRecord, MetricHistoryRecord
from alertcpl.storage.database import Database

logger = logging.getLogger(__name__)


class HistoryRepository:
    """Append-only access to the ``cpl_logs`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def insert(self, record: MetricHistoryRecord) -> str:
        """Insert a history snapshot and return its id."""
        sql = """
            INSERT INTO cpl_logs (
                id, ad_account_id, campaign_name, adset_name, ad_name,
                ad_meta_id, spend, leads, calculated_cpl, checked_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING id
        """
        return await self._db.fetchval(
            sql,
            record.record_id,
            record.account_id,
            record.campaign_name,
            record.adset_name,
            record.ad_name,
            record.ad_id,
            record.spend,
            record.leads,
            record.cpl,
            record.checked_at,
        )

    async def get_recent(
        self,
        *,
        account_id: str | None = None,
        limit: int = 50,
    ) -> list[MetricHistoryRecord]:
        """Get history newest first, optionally for one account (internal id)."""
        if account_id is not None:
            sql = """
                SELECT * FROM cpl_logs
                WHERE ad_account_id = $1
                ORDER BY checked_at DESC
                LIMIT $2
            """
            rows = await self._db.fetch(sql, account_id, limit)
        else:
            sql = "SELECT * FROM cpl_logs ORDER BY checked_at DESC LIMIT $1"
            rows = await self._db.fetch(sql, limit)
        return [_row_to_history(row) for row in rows]


class AlertRepository:
    """Repository for alert record persistence and suppression lookups.

    Records are inserted with an empty message before delivery is
    attempted; ``update_message`` and ``mark_sent`` fill in the rest.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def insert(self, record: AlertRecord) -> str:
        """Insert an alert record.

        Args:
            record: Alert to persist. Its ``message`` is normally empty.

        Returns:
            The stored record id.
        """
        sql = """
            INSERT INTO alert_logs (
                id, ad_account_id, agency_id, alert_type, ad_meta_id,
                campaign_name, adset_name, ad_name, spend, leads,
                calculated_cpl, cpl_threshold, message, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            RETURNING id
        """
        return await self._db.fetchval(
            sql,
            record.record_id,
            record.account_id,
            record.agency_id,
            record.kind,
            record.ad_id,
            record.campaign_name,
            record.adset_name,
            record.ad_name,
            record.spend,
            record.leads,
            record.cpl,
            record.threshold,
            record.message,
            record.created_at,
        )

    async def find_recent(
        self,
        ad_id: str,
        kind: str,
        account_id: str,
        since: datetime,
    ) -> bool:
        """Check whether an alert for (ad, kind, account) exists at or after ``since``."""
        sql = """
            SELECT EXISTS (
                SELECT 1 FROM alert_logs
                WHERE ad_meta_id = $1
                  AND alert_type = $2
                  AND ad_account_id = $3
                  AND created_at >= $4
            )
        """
        return bool(await self._db.fetchval(sql, ad_id, kind, account_id, since))

    async def update_message(self, record_id: str, message: str) -> bool:
        """Attach the rendered message. Returns False if the record is gone."""
        sql = "UPDATE alert_logs SET message = $2 WHERE id = $1 RETURNING id"
        return await self._db.fetchval(sql, record_id, message) is not None

    async def mark_sent(self, record_id: str, sent_at: datetime) -> bool:
        """Stamp a confirmed delivery."""
        sql = "UPDATE alert_logs SET sent_at = $2 WHERE id = $1 RETURNING id"
        return await self._db.fetchval(sql, record_id, sent_at) is not None

    async def get_recent(
        self,
        *,
        account_id: str | None = None,
        kind: str | None = None,
        limit: int = 50,
    ) -> list[AlertRecord]:
        """Get recent alerts with optional filtering.

        Args:
            account_id: Filter by internal account id.
            kind: Filter by alert kind.
            limit: Maximum records to return.

        Returns:
            Alert records ordered by created_at descending.
        """
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        if account_id is not None:
            conditions.append(f"ad_account_id = ${param_idx}")
            params.append(account_id)
            param_idx += 1

        if kind is not None:
            conditions.append(f"alert_type = ${param_idx}")
            params.append(kind)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        sql = f"""
            SELECT * FROM alert_logs
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx}
        """
        params.append(limit)

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]


def _row_to_history(row: Any) -> MetricHistoryRecord:
    """Convert an asyncpg Record to a MetricHistoryRecord."""
    return MetricHistoryRecord(
        record_id=str(row["id"]),
        account_id=str(row["ad_account_id"]),
        campaign_name=row["campaign_name"],
        adset_name=row["adset_name"],
        ad_name=row["ad_name"],
        ad_id=row["ad_meta_id"],
        spend=float(row["spend"]),
        leads=int(row["leads"]),
        cpl=float(row["calculated_cpl"]),
        checked_at=row["checked_at"],
    )


def _row_to_alert(row: Any) -> AlertRecord:
    """Convert an asyncpg Record to an AlertRecord."""
    return AlertRecord(
        record_id=str(row["id"]),
        account_id=str(row["ad_account_id"]),
        agency_id=row.get("agency_id"),
        kind=row["alert_type"],
        ad_id=row["ad_meta_id"],
        campaign_name=row["campaign_name"],
        adset_name=row["adset_name"],
        ad_name=row["ad_name"],
        spend=float(row["spend"]),
        leads=int(row["leads"]),
        cpl=float(row["calculated_cpl"]),
        threshold=float(row["cpl_threshold"]),
        message=row.get("message") or "",
        created_at=row["created_at"],
        sent_at=row.get("sent_at"),
    )
