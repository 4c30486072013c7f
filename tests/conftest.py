"""Pytest fixtures for AlertCPL tests."""

from datetime import datetime, timezone

import pytest

from alertcpl.accounts.schemas import Account, NotificationDestination
from alertcpl.config.settings import get_settings
from alertcpl.insights.schemas import MetricSample

# Settings read from the environment that would change behaviour under test
_ISOLATED_ENV = (
    "API_KEYS",
    "TRIGGER_SECRET",
    "META_ACCESS_TOKEN",
    "META_APP_ID",
    "META_APP_SECRET",
    "META_SHORT_LIVED_TOKEN",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_TEST_CHAT_ID",
    "ALERTS_SUPPRESSION_WINDOW_SECONDS",
    "ALERTS_REPORTING_WINDOW",
    "ALERTS_MARKUP",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test against default settings with the scheduler disabled."""
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENGINE_ENABLED", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def account() -> Account:
    """An active account with a $5 CPL threshold."""
    return Account(
        id="acc-internal-1",
        account_id="1234567890",
        account_name="Acme Dental",
        cpl_threshold=5.0,
        is_active=True,
        agency_id="agency-1",
        created_at=datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def destination() -> NotificationDestination:
    return NotificationDestination(
        agency_id="agency-1",
        agency_name="Growth Agency",
        chat_id="-100200300",
    )


def make_sample(
    ad_id: str = "ad_1",
    spend: float = 100.0,
    leads: int = 10,
    **kwargs,
) -> MetricSample:
    """Helper to create a MetricSample with sensible defaults."""
    return MetricSample(
        campaign_name=kwargs.pop("campaign_name", "Spring Promo"),
        adset_name=kwargs.pop("adset_name", "Lookalike 1%"),
        ad_name=kwargs.pop("ad_name", "Video A"),
        ad_id=ad_id,
        spend=spend,
        leads=leads,
    )


@pytest.fixture
def sample_factory():
    """Factory fixture for MetricSample instances."""
    return make_sample
