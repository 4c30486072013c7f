"""
Meta Graph API insights client.

Fetches per-ad spend and lead totals for a monitored ad account:
1. List the account's ACTIVE campaigns
2. Request ad-level insights filtered to active ads in those campaigns
3. Drop any row whose campaign is not in the active set
4. Parse leads from the ``actions`` entry with ``action_type == "lead"``

The Graph API filter is not trusted on its own; step 3 re-applies it
locally because mixed campaign statuses can leak through.
"""

import json
import logging
import math
from typing import Any

from alertcpl.config.settings import get_settings
from alertcpl.insights.http_client import HTTPClient, HTTPClientError, RetryConfig
from alertcpl.insights.schemas import LongLivedToken, MetricSample

logger = logging.getLogger(__name__)

CAMPAIGN_PAGE_LIMIT = 1000
INSIGHTS_PAGE_LIMIT = 500
INSIGHT_FIELDS = "campaign_id,campaign_name,adset_id,adset_name,ad_id,ad_name,spend,actions"
LEAD_ACTION_TYPE = "lead"
MISSING_NAME = "N/A"


class MetricsSourceError(Exception):
    """The Graph API rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class MetaInsightsClient:
    """
    Reads ad-level insights from the Meta Graph API.

    A missing access token is a configuration error: ``fetch_samples``
    logs it and returns None so the caller can skip the account.

    Example:
        client = MetaInsightsClient()
        samples = await client.fetch_samples("1234567890", window="today")
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
    ):
        settings = get_settings()
        self._access_token = access_token if access_token is not None else settings.meta_access_token
        self._base_url = (base_url or settings.meta_graph_base_url).rstrip("/")
        self._api_version = api_version or settings.meta_api_version
        self._timeout = timeout if timeout is not None else settings.meta_request_timeout_seconds
        self._retry_config = retry_config or RetryConfig(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token)

    def _url(self, account_id: str, edge: str | None = None) -> str:
        url = f"{self._base_url}/{self._api_version}/act_{account_id}"
        return f"{url}/{edge}" if edge else url

    async def fetch_samples(
        self,
        account_id: str,
        window: str = "today",
    ) -> list[MetricSample] | None:
        """
        Fetch metric samples for every active ad of an account.

        Args:
            account_id: Meta ad account id without the ``act_`` prefix
            window: Graph API ``date_preset`` (e.g. "today", "last_7d")

        Returns:
            Samples for active ads, [] when there is nothing to evaluate or
            the API rejected the request, None when no token is configured.
        """
        if not self._access_token:
            logger.error("META_ACCESS_TOKEN is not set; cannot fetch insights")
            return None

        async with HTTPClient(self._retry_config, timeout=self._timeout) as client:
            try:
                campaign_ids = await self._get_active_campaign_ids(client, account_id)
                if not campaign_ids:
                    logger.info("Skipping account %s: no active campaigns", account_id)
                    return []

                rows = await self._get_ad_insights(client, account_id, window, campaign_ids)
            except MetricsSourceError as e:
                if e.status_code == 400:
                    logger.warning(
                        "Invalid account id or API error for account %s: %s",
                        account_id, json.dumps(e.payload, default=str),
                    )
                else:
                    logger.error("Error fetching ad insights for account %s: %s", account_id, e)
                return []

        if not rows:
            logger.warning("No active ads found in active campaigns for account %s", account_id)
            return []

        active = set(campaign_ids)
        kept = [row for row in rows if str(row.get("campaign_id")) in active]

        dropped = len(rows) - len(kept)
        if dropped:
            logger.info("Filtered out %d ads from inactive campaigns for account %s", dropped, account_id)

        samples = [_parse_sample(row) for row in kept]
        logger.info("Found %d ads under active campaigns for account %s", len(samples), account_id)
        return samples

    async def fetch_account_name(self, account_id: str) -> str | None:
        """Read an ad account's display name. Returns None on any failure."""
        if not self._access_token:
            logger.error("META_ACCESS_TOKEN is not set; cannot fetch account name")
            return None

        async with HTTPClient(self._retry_config, timeout=self._timeout) as client:
            try:
                data = await self._get_json(client, self._url(account_id), {"fields": "name"})
            except MetricsSourceError as e:
                logger.error("Error fetching name for account %s: %s", account_id, e)
                return None

        return data.get("name") or None

    async def exchange_token(
        self,
        short_lived_token: str,
        app_id: str | None = None,
        app_secret: str | None = None,
    ) -> LongLivedToken:
        """
        Trade a short-lived user token for a long-lived one (about 60 days).

        The result replaces ``META_ACCESS_TOKEN``; this client does not
        store it.

        Raises:
            MetricsSourceError: Missing app credentials, a Graph API error,
                or a response without ``access_token``
        """
        settings = get_settings()
        app_id = app_id or settings.meta_app_id
        app_secret = app_secret or settings.meta_app_secret
        if not (app_id and app_secret):
            raise MetricsSourceError(
                "META_APP_ID and META_APP_SECRET are required to exchange a token"
            )
        if not short_lived_token:
            raise MetricsSourceError("A short-lived token is required")

        params = {
            "grant_type": "fb_exchange_token",
            "client_id": app_id,
            "client_secret": app_secret,
            "fb_exchange_token": short_lived_token,
        }
        url = f"{self._base_url}/{self._api_version}/oauth/access_token"
        async with HTTPClient(self._retry_config, timeout=self._timeout) as client:
            data = await self._get_json(client, url, params, authenticated=False)

        token = data.get("access_token")
        if not token:
            raise MetricsSourceError("No access token returned from Graph API", payload=data)

        expires_in = data.get("expires_in")
        logger.info("Exchanged short-lived token (expires_in=%s)", expires_in)
        return LongLivedToken(
            access_token=token,
            expires_in=_to_int(expires_in) if expires_in is not None else None,
            token_type=data.get("token_type"),
        )

    async def _get_active_campaign_ids(
        self,
        client: HTTPClient,
        account_id: str,
    ) -> list[str]:
        params = {
            "fields": "id,name,effective_status",
            "effective_status": '["ACTIVE"]',
            "limit": CAMPAIGN_PAGE_LIMIT,
        }
        try:
            data = await self._get_json(client, self._url(account_id, "campaigns"), params)
        except MetricsSourceError as e:
            logger.error("Error fetching campaigns for account %s: %s", account_id, e)
            return []

        campaigns = data.get("data") or []
        ids = [str(c["id"]) for c in campaigns if c.get("id") is not None]
        logger.debug("Found %d active campaigns for account %s", len(ids), account_id)
        return ids

    async def _get_ad_insights(
        self,
        client: HTTPClient,
        account_id: str,
        window: str,
        campaign_ids: list[str],
    ) -> list[dict[str, Any]]:
        filtering = [
            {"field": "ad.effective_status", "operator": "IN", "value": ["ACTIVE"]},
            {"field": "campaign.id", "operator": "IN", "value": campaign_ids},
        ]
        params = {
            "level": "ad",
            "date_preset": window,
            "fields": INSIGHT_FIELDS,
            "filtering": json.dumps(filtering),
            "limit": INSIGHTS_PAGE_LIMIT,
        }
        data = await self._get_json(client, self._url(account_id, "insights"), params)
        return data.get("data") or []

    async def _get_json(
        self,
        client: HTTPClient,
        url: str,
        params: dict[str, Any],
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """GET a Graph API resource, translating transport errors to MetricsSourceError."""
        if authenticated:
            params = {**params, "access_token": self._access_token}
        try:
            response = await client.get(url, params=params)
        except HTTPClientError as e:
            raise MetricsSourceError(
                str(e), status_code=e.status_code, payload=_decode(e.response_body),
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise MetricsSourceError(f"Invalid JSON from Graph API: {e}") from e

        if not isinstance(data, dict):
            raise MetricsSourceError("Unexpected Graph API response shape", payload=data)
        return data


def _parse_sample(row: dict[str, Any]) -> MetricSample:
    """Convert one insights row to a MetricSample; unparsable numbers become 0."""
    leads = 0
    actions = row.get("actions")
    if isinstance(actions, list):
        for action in actions:
            if isinstance(action, dict) and action.get("action_type") == LEAD_ACTION_TYPE:
                leads = _to_int(action.get("value"))
                break

    return MetricSample(
        campaign_name=row.get("campaign_name") or MISSING_NAME,
        adset_name=row.get("adset_name") or MISSING_NAME,
        ad_name=row.get("ad_name") or MISSING_NAME,
        ad_id=str(row.get("ad_id") or ""),
        spend=_to_float(row.get("spend")),
        leads=leads,
    )


def _to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _decode(body: str | None) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body
