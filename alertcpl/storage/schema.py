"""
Schema bootstrap for the AlertCPL tables.

Table and column names follow the store the dashboard already reads:
``agencies``, ``ad_accounts``, ``cpl_logs`` and ``alert_logs``. Every
statement is idempotent so ``alertcpl init-db`` can be re-run safely.
"""

import logging

from alertcpl.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS agencies (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    name TEXT NOT NULL,
    telegram_chat_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS ad_accounts (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    account_id TEXT NOT NULL UNIQUE,
    account_name TEXT NOT NULL DEFAULT '',
    cpl_threshold DOUBLE PRECISION NOT NULL CHECK (cpl_threshold > 0),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    agency_id TEXT REFERENCES agencies(id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS cpl_logs (
    id TEXT PRIMARY KEY,
    ad_account_id TEXT NOT NULL REFERENCES ad_accounts(id) ON DELETE CASCADE,
    campaign_name TEXT NOT NULL,
    adset_name TEXT NOT NULL,
    ad_name TEXT NOT NULL,
    ad_meta_id TEXT NOT NULL,
    spend DOUBLE PRECISION NOT NULL,
    leads INTEGER NOT NULL,
    calculated_cpl DOUBLE PRECISION NOT NULL,
    checked_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS alert_logs (
    id TEXT PRIMARY KEY,
    ad_account_id TEXT NOT NULL REFERENCES ad_accounts(id) ON DELETE CASCADE,
    agency_id TEXT,
    alert_type TEXT NOT NULL
        CHECK (alert_type IN ('ZERO_LEADS_HIGH_SPEND', 'HIGH_COST_PER_LEAD')),
    ad_meta_id TEXT NOT NULL,
    campaign_name TEXT NOT NULL,
    adset_name TEXT NOT NULL,
    ad_name TEXT NOT NULL,
    spend DOUBLE PRECISION NOT NULL,
    leads INTEGER NOT NULL,
    calculated_cpl DOUBLE PRECISION NOT NULL,
    cpl_threshold DOUBLE PRECISION NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    sent_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_ad_accounts_active
    ON ad_accounts(is_active);
CREATE INDEX IF NOT EXISTS idx_cpl_logs_account_checked
    ON cpl_logs(ad_account_id, checked_at DESC);
CREATE INDEX IF NOT EXISTS idx_cpl_logs_checked
    ON cpl_logs(checked_at DESC);
-- Suppression-window lookup: (ad, kind, account) within a trailing window
CREATE INDEX IF NOT EXISTS idx_alert_logs_dedup
    ON alert_logs(ad_meta_id, alert_type, ad_account_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alert_logs_created
    ON alert_logs(created_at DESC);
"""


async def create_tables(database: Database) -> None:
    """Create all AlertCPL tables and indexes if they don't exist."""
    async with database.transaction() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("AlertCPL schema ensured")
