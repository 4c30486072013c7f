"""Tests for the alertcpl command-line interface."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from alertcpl.accounts.schemas import Account
from alertcpl.cli import main
from alertcpl.engine.schemas import AccountResult, CycleResult, CycleStatus, UnitStatus
from alertcpl.insights.client import MetricsSourceError
from alertcpl.insights.schemas import LongLivedToken
from alertcpl.notifications.channels import NotificationError

STARTED = datetime(2026, 5, 4, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.health_check.return_value = True
    return db


def _loop_returning(result: CycleResult) -> MagicMock:
    loop = MagicMock()
    loop.run = AsyncMock(return_value=result)
    return loop


class TestRunOnce:
    """Test the `run-once` command."""

    def test_prints_summary(self, runner, mock_db):
        result = CycleResult(
            status=CycleStatus.COMPLETED,
            cycle_id="abc123",
            started_at=STARTED,
            finished_at=STARTED,
            accounts=[AccountResult(account_id="111", status=UnitStatus.OK)],
        )

        with patch("alertcpl.storage.database.Database", return_value=mock_db), \
                patch("alertcpl.engine.reconciliation.build_reconciliation_loop",
                      return_value=_loop_returning(result)):
            out = runner.invoke(main, ["run-once"])

        assert out.exit_code == 0, out.output
        assert "Reconciliation Results" in out.output
        assert "status: completed" in out.output
        mock_db.connect.assert_awaited_once()
        mock_db.close.assert_awaited_once()

    def test_json_output(self, runner, mock_db):
        result = CycleResult(status=CycleStatus.NO_ACCOUNTS, cycle_id="abc123", started_at=STARTED)

        with patch("alertcpl.storage.database.Database", return_value=mock_db), \
                patch("alertcpl.engine.reconciliation.build_reconciliation_loop",
                      return_value=_loop_returning(result)):
            out = runner.invoke(main, ["run-once", "--json"])

        assert out.exit_code == 0, out.output
        summary, _ = json.JSONDecoder().raw_decode(out.output, out.output.index("{\n"))
        assert summary["status"] == "no_accounts"
        assert summary["cycle_id"] == "abc123"

    def test_failed_cycle_exits_nonzero(self, runner, mock_db):
        result = CycleResult(status=CycleStatus.FAILED, error="account listing failed: boom")

        with patch("alertcpl.storage.database.Database", return_value=mock_db), \
                patch("alertcpl.engine.reconciliation.build_reconciliation_loop",
                      return_value=_loop_returning(result)):
            out = runner.invoke(main, ["run-once"])

        assert out.exit_code == 1
        assert "account listing failed" in out.output

    def test_closes_db_on_error(self, runner, mock_db):
        loop = MagicMock()
        loop.run = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("alertcpl.storage.database.Database", return_value=mock_db), \
                patch("alertcpl.engine.reconciliation.build_reconciliation_loop", return_value=loop):
            out = runner.invoke(main, ["run-once"])

        mock_db.close.assert_awaited_once()
        assert out.exit_code != 0


class TestInitDb:
    def test_creates_tables(self, runner, mock_db):
        with patch("alertcpl.storage.database.Database", return_value=mock_db), \
                patch("alertcpl.storage.schema.create_tables", new_callable=AsyncMock) as create:
            out = runner.invoke(main, ["init-db"])

        assert out.exit_code == 0, out.output
        create.assert_awaited_once_with(mock_db)
        assert "initialized" in out.output


class TestHealth:
    def test_healthy_database(self, runner, mock_db):
        with patch("alertcpl.storage.database.Database", return_value=mock_db):
            out = runner.invoke(main, ["health"])

        assert out.exit_code == 0, out.output
        assert "postgres: True" in out.output
        assert "meta_configured: False" in out.output

    def test_database_down(self, runner, mock_db):
        mock_db.connect.side_effect = OSError("connection refused")

        with patch("alertcpl.storage.database.Database", return_value=mock_db):
            out = runner.invoke(main, ["health"])

        assert out.exit_code == 1


class TestSyncAccountNames:
    """Test the `sync-account-names` command."""

    def test_requires_token(self, runner):
        out = runner.invoke(main, ["sync-account-names"])

        assert out.exit_code == 1
        assert "META_ACCESS_TOKEN" in out.output

    def test_updates_changed_names(self, runner, mock_db):
        client = MagicMock()
        client.is_configured = True
        client.fetch_account_name = AsyncMock(side_effect=["Acme Dental", "New Name", None])

        repo = MagicMock()
        repo.list_all = AsyncMock(return_value=[
            Account(id="a1", account_id="111", account_name="Acme Dental", cpl_threshold=5.0),
            Account(id="a2", account_id="222", account_name="Old Name", cpl_threshold=5.0),
            Account(id="a3", account_id="333", account_name="Gone", cpl_threshold=5.0),
        ])
        repo.update_name = AsyncMock(return_value=True)

        with patch("alertcpl.insights.client.MetaInsightsClient", return_value=client), \
                patch("alertcpl.accounts.repository.AccountRepository", return_value=repo), \
                patch("alertcpl.storage.database.Database", return_value=mock_db):
            out = runner.invoke(main, ["sync-account-names"])

        assert out.exit_code == 0, out.output
        repo.update_name.assert_awaited_once_with("a2", "New Name")
        assert "1 updated, 1 unchanged, 1 failed" in out.output
        mock_db.close.assert_awaited_once()


class TestExchangeToken:
    """Test the `exchange-token` command."""

    @pytest.fixture
    def app_credentials(self, monkeypatch):
        monkeypatch.setenv("META_APP_ID", "app-1")
        monkeypatch.setenv("META_APP_SECRET", "shh")

    def test_requires_app_credentials(self, runner):
        out = runner.invoke(main, ["exchange-token", "--short-lived-token", "EAAshort"])

        assert out.exit_code == 1
        assert "META_APP_ID, META_APP_SECRET" in out.output

    def test_requires_short_lived_token(self, runner, app_credentials):
        out = runner.invoke(main, ["exchange-token"])

        assert out.exit_code == 1
        assert "META_SHORT_LIVED_TOKEN" in out.output

    def test_prints_token_and_expiry(self, runner, app_credentials, monkeypatch):
        monkeypatch.setenv("META_SHORT_LIVED_TOKEN", "EAAshort")
        client = MagicMock()
        client.exchange_token = AsyncMock(
            return_value=LongLivedToken(access_token="EAAlong", expires_in=5184000),
        )

        with patch("alertcpl.insights.client.MetaInsightsClient", return_value=client):
            out = runner.invoke(main, ["exchange-token"])

        assert out.exit_code == 0, out.output
        client.exchange_token.assert_awaited_once_with("EAAshort")
        assert "EAAlong" in out.output
        assert "5184000 seconds (60 days" in out.output

    def test_graph_error_message_shown(self, runner, app_credentials):
        client = MagicMock()
        client.exchange_token = AsyncMock(side_effect=MetricsSourceError(
            "returned 400",
            status_code=400,
            payload={"error": {"message": "Error validating access token"}},
        ))

        with patch("alertcpl.insights.client.MetaInsightsClient", return_value=client):
            out = runner.invoke(main, ["exchange-token", "--short-lived-token", "EAAshort"])

        assert out.exit_code == 1
        assert "Token exchange failed: Error validating access token" in out.output


class TestTestTelegram:
    """Test the `test-telegram` command."""

    def test_requires_chat_id(self, runner):
        out = runner.invoke(main, ["test-telegram"])

        assert out.exit_code == 1
        assert "TELEGRAM_TEST_CHAT_ID" in out.output

    def test_sends_message(self, runner):
        channel = MagicMock()
        channel.send = AsyncMock()

        with patch("alertcpl.notifications.channels.TelegramChannel", return_value=channel) as cls:
            out = runner.invoke(main, ["test-telegram", "--chat-id", "-100123"])

        assert out.exit_code == 0, out.output
        assert "Telegram alert sent successfully!" in out.output
        cls.assert_called_once_with(dialect="plain")
        destination, text = channel.send.await_args[0]
        assert destination.chat_id == "-100123"
        assert text == "AlertCPL test alert 🚨"

    def test_chat_id_from_settings(self, runner, monkeypatch):
        monkeypatch.setenv("TELEGRAM_TEST_CHAT_ID", "-100999")
        channel = MagicMock()
        channel.send = AsyncMock()

        with patch("alertcpl.notifications.channels.TelegramChannel", return_value=channel):
            out = runner.invoke(main, ["test-telegram"])

        assert out.exit_code == 0, out.output
        assert channel.send.await_args[0][0].chat_id == "-100999"

    def test_send_failure(self, runner):
        channel = MagicMock()
        channel.send = AsyncMock(side_effect=NotificationError("Telegram returned 400", status_code=400))

        with patch("alertcpl.notifications.channels.TelegramChannel", return_value=channel):
            out = runner.invoke(main, ["test-telegram", "--chat-id", "-100123"])

        assert out.exit_code == 1
        assert "Telegram test failed" in out.output
