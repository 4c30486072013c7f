"""Tests for the suppression-window gate."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from alertcpl.alerts.config import AlertConfig
from alertcpl.alerts.dedup import DedupGate
from alertcpl.alerts.repository import AlertRepository
from alertcpl.alerts.schemas import HIGH_COST_PER_LEAD, ZERO_LEADS_HIGH_SPEND
from alertcpl.storage.database import Database

NOW = datetime(2026, 5, 4, 12, 0, 0, tzinfo=timezone.utc)


class _InMemoryDatabase:
    """Answers the suppression EXISTS query from a list of (ad, kind, account, created_at)."""

    def __init__(self, rows):
        self.rows = rows

    async def fetchval(self, query, ad_id, kind, account_id, since):
        return any(
            r[0] == ad_id and r[1] == kind and r[2] == account_id and r[3] >= since
            for r in self.rows
        )


@pytest.fixture
def gate():
    rows = [("ad_1", HIGH_COST_PER_LEAD, "A", NOW - timedelta(minutes=30))]
    return DedupGate(AlertRepository(_InMemoryDatabase(rows)), AlertConfig())


class TestDedupGate:
    """Tests for DedupGate.should_suppress."""

    def test_default_window_is_two_hours(self):
        assert DedupGate(AlertRepository(AsyncMock(spec=Database))).window == timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_identical_incident_suppressed(self, gate):
        assert await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "A", NOW)

    @pytest.mark.asyncio
    async def test_different_kind_not_suppressed(self, gate):
        assert not await gate.should_suppress("ad_1", ZERO_LEADS_HIGH_SPEND, "A", NOW)

    @pytest.mark.asyncio
    async def test_different_account_not_suppressed(self, gate):
        assert not await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "B", NOW)

    @pytest.mark.asyncio
    async def test_old_record_not_suppressed(self):
        rows = [("ad_1", HIGH_COST_PER_LEAD, "A", NOW - timedelta(hours=3))]
        gate = DedupGate(AlertRepository(_InMemoryDatabase(rows)))

        assert not await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "A", NOW)

    @pytest.mark.asyncio
    async def test_window_from_config(self):
        rows = [("ad_1", HIGH_COST_PER_LEAD, "A", NOW - timedelta(minutes=30))]
        gate = DedupGate(
            AlertRepository(_InMemoryDatabase(rows)),
            AlertConfig(suppression_window_seconds=600),
        )

        assert not await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "A", NOW)

    @pytest.mark.asyncio
    async def test_queries_with_window_start(self):
        repo = AsyncMock(spec=AlertRepository)
        repo.find_recent.return_value = False
        gate = DedupGate(repo)

        await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "A", NOW)

        repo.find_recent.assert_awaited_once_with(
            "ad_1", HIGH_COST_PER_LEAD, "A", NOW - timedelta(hours=2),
        )

    @pytest.mark.asyncio
    async def test_lookup_errors_propagate(self):
        repo = AsyncMock(spec=AlertRepository)
        repo.find_recent.side_effect = RuntimeError("connection lost")
        gate = DedupGate(repo)

        with pytest.raises(RuntimeError):
            await gate.should_suppress("ad_1", HIGH_COST_PER_LEAD, "A", NOW)
