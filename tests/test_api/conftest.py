"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from alertcpl.accounts.repository import AccountRepository
from alertcpl.alerts.repository import AlertRepository, HistoryRepository
from alertcpl.api.app import create_app
from alertcpl.api.auth import verify_api_key
from alertcpl.api.dependencies import (
    get_account_repository,
    get_alert_repository,
    get_database,
    get_history_repository,
    get_reconciliation_loop,
    get_scheduler,
)
from alertcpl.engine.schemas import CycleResult, CycleStatus, RunState
from alertcpl.storage.database import Database

TRIGGER_SECRET = "s3cret"


@pytest.fixture
def mock_account_repo():
    """Mock AccountRepository."""
    repo = AsyncMock(spec=AccountRepository)
    repo.list_all.return_value = []
    repo.update_threshold.return_value = None
    return repo


@pytest.fixture
def mock_history_repo():
    repo = AsyncMock(spec=HistoryRepository)
    repo.get_recent.return_value = []
    return repo


@pytest.fixture
def mock_alert_repo():
    repo = AsyncMock(spec=AlertRepository)
    repo.get_recent.return_value = []
    return repo


@pytest.fixture
def mock_database():
    db = AsyncMock(spec=Database)
    db.health_check.return_value = True
    return db


@pytest.fixture
def mock_loop():
    """Stand-in ReconciliationLoop in the IDLE state with no history."""
    loop = MagicMock()
    loop.state = RunState.IDLE
    loop.last_run_started_at = None
    loop.last_result = None
    loop.run = AsyncMock(return_value=CycleResult(
        status=CycleStatus.COMPLETED,
        cycle_id="abc123",
        started_at=datetime(2026, 5, 4, 12, 0, 0, tzinfo=timezone.utc),
        finished_at=datetime(2026, 5, 4, 12, 0, 3, tzinfo=timezone.utc),
    ))
    return loop


@pytest.fixture
def app(mock_account_repo, mock_history_repo, mock_alert_repo, mock_database, mock_loop):
    """FastAPI app with every external dependency overridden."""
    app = create_app()

    app.dependency_overrides[get_account_repository] = lambda: mock_account_repo
    app.dependency_overrides[get_history_repository] = lambda: mock_history_repo
    app.dependency_overrides[get_alert_repository] = lambda: mock_alert_repo
    app.dependency_overrides[get_database] = lambda: mock_database
    app.dependency_overrides[get_reconciliation_loop] = lambda: mock_loop
    app.dependency_overrides[get_scheduler] = lambda: None

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """TestClient with API key checks bypassed."""
    app.dependency_overrides[verify_api_key] = lambda: "test-key"

    with TestClient(app) as c:
        yield c


@pytest.fixture
def trigger_client(app, monkeypatch):
    """TestClient with TRIGGER_SECRET configured."""
    from alertcpl.config.settings import get_settings

    monkeypatch.setenv("TRIGGER_SECRET", TRIGGER_SECRET)
    get_settings.cache_clear()

    with TestClient(app) as c:
        yield c
