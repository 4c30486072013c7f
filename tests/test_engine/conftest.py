"""In-memory collaborators for reconciliation loop tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from alertcpl.accounts.schemas import NotificationDestination
from alertcpl.alerts.config import AlertConfig
from alertcpl.engine.reconciliation import ReconciliationLoop
from alertcpl.notifications.channels import NotificationError, NotificationSink


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 5, 4, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAccountRepo:
    def __init__(self, accounts=None, destinations=None):
        self.accounts = list(accounts or [])
        self.destinations = dict(destinations or {})
        self.list_error: Exception | None = None
        self.destination_error: Exception | None = None

    async def list_active(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.accounts)

    async def get_notification_destination(self, internal_id):
        if self.destination_error is not None:
            raise self.destination_error
        return self.destinations.get(internal_id)


class FakeHistoryRepo:
    def __init__(self):
        self.records = []
        self.fail_for: set[str] = set()

    async def insert(self, record):
        if record.ad_id in self.fail_for:
            raise RuntimeError("cpl_logs unavailable")
        self.records.append(record)
        return record.record_id


class FakeAlertRepo:
    """Alert store with the same suppression lookup semantics as PostgreSQL."""

    def __init__(self):
        self.records = []
        self.messages: dict[str, str] = {}
        self.sent: dict[str, datetime] = {}
        self.insert_error: Exception | None = None
        self.find_error: Exception | None = None
        self.update_error: Exception | None = None
        self.mark_sent_error: Exception | None = None

    async def find_recent(self, ad_id, kind, account_id, since):
        if self.find_error is not None:
            raise self.find_error
        return any(
            r.ad_id == ad_id
            and r.kind == kind
            and r.account_id == account_id
            and r.created_at >= since
            for r in self.records
        )

    async def insert(self, record):
        if self.insert_error is not None:
            raise self.insert_error
        self.records.append(record)
        return record.record_id

    async def update_message(self, alert_id, message):
        if self.update_error is not None:
            raise self.update_error
        self.messages[alert_id] = message
        return True

    async def mark_sent(self, alert_id, sent_at):
        if self.mark_sent_error is not None:
            raise self.mark_sent_error
        self.sent[alert_id] = sent_at
        return True


class FakeSource:
    """Metrics source keyed by external account id.

    A value that is an exception is raised instead of returned.
    """

    def __init__(self, samples=None):
        self.samples = dict(samples or {})
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    async def fetch_samples(self, account_id, window="today"):
        self.calls.append((account_id, window))
        if self.gate is not None:
            await self.gate.wait()
        value = self.samples.get(account_id, [])
        if isinstance(value, Exception):
            raise value
        return value


class FakeSink(NotificationSink):
    def __init__(self):
        self.sent: list[tuple[NotificationDestination, str]] = []
        self.error: Exception | None = None

    @property
    def name(self) -> str:
        return "fake"

    async def send(self, destination, text):
        if self.error is not None:
            raise self.error
        self.sent.append((destination, text))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def account_repo(account, destination):
    return FakeAccountRepo([account], {account.id: destination})


@pytest.fixture
def history_repo():
    return FakeHistoryRepo()


@pytest.fixture
def alert_repo():
    return FakeAlertRepo()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def alert_config():
    return AlertConfig(suppression_window_seconds=7200, markup="plain")


@pytest.fixture
def loop(account_repo, history_repo, alert_repo, source, sink, alert_config, clock):
    return ReconciliationLoop(
        account_repo=account_repo,
        history_repo=history_repo,
        alert_repo=alert_repo,
        metrics_source=source,
        sink=sink,
        config=alert_config,
        clock=clock,
    )


@pytest.fixture
def send_failure():
    return NotificationError("Telegram API error 502", status_code=502, retryable=True)
