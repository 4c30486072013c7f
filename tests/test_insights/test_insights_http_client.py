"""Tests for the Graph API HTTP transport."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from alertcpl.insights.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
    _redact,
)

URL = "https://graph.test/v24.0/act_1/insights"


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_calculate_backoff_exponential(self):
        config = RetryConfig(base_delay=1.0, jitter_factor=0.0)

        assert config.calculate_backoff(0) == 1.0
        assert config.calculate_backoff(1) == 2.0
        assert config.calculate_backoff(2) == 4.0

    def test_calculate_backoff_capped(self):
        config = RetryConfig(base_delay=1.0, max_backoff_seconds=5.0, jitter_factor=0.0)

        assert config.calculate_backoff(10) == 5.0

    def test_jitter_bounded(self):
        config = RetryConfig(base_delay=1.0, jitter_factor=0.1)

        for _ in range(20):
            assert 1.0 <= config.calculate_backoff(0) <= 1.1

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert RetryConfig().is_retryable_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_final_statuses(self, status):
        assert not RetryConfig().is_retryable_status(status)


class TestHTTPClient:
    """Tests for HTTPClient.get."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_success(self):
        respx.get(URL).mock(return_value=httpx.Response(200, json={"data": []}))

        async with HTTPClient() as client:
            response = await client.get(URL, params={"level": "ad"})

        assert response.json() == {"data": []}

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError):
            await HTTPClient().get(URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_server_error_then_succeeds(self):
        route = respx.get(URL).mock(side_effect=[
            httpx.Response(503),
            httpx.Response(200, json={"data": []}),
        ])

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with HTTPClient(RetryConfig(max_retries=2)) as client:
                response = await client.get(URL)

        assert response.status_code == 200
        assert route.call_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_connect_error(self):
        respx.get(URL).mock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.Response(200, json={}),
        ])

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(RetryConfig(max_retries=1)) as client:
                response = await client.get(URL)

        assert response.status_code == 200

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_exhausted(self):
        route = respx.get(URL).mock(return_value=httpx.Response(429, text="slow down"))

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(RetryConfig(max_retries=2)) as client:
                with pytest.raises(RateLimitError) as exc_info:
                    await client.get(URL)

        assert route.call_count == 3
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_exhausted(self):
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        async with HTTPClient(RetryConfig(max_retries=0)) as client:
            with pytest.raises(HTTPClientError, match="after 1 attempts"):
                await client.get(URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_not_retried(self):
        route = respx.get(URL).mock(
            return_value=httpx.Response(400, json={"error": {"message": "bad"}})
        )

        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get(URL)

        assert route.call_count == 1
        assert exc_info.value.status_code == 400
        assert "bad" in exc_info.value.response_body

    @pytest.mark.asyncio
    @respx.mock
    async def test_graph_throttle_code_retried(self):
        route = respx.get(URL).mock(side_effect=[
            httpx.Response(400, json={"error": {"message": "User request limit reached", "code": 17}}),
            httpx.Response(200, json={"data": []}),
        ])

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(RetryConfig(max_retries=1)) as client:
                response = await client.get(URL)

        assert response.status_code == 200
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_graph_throttle_exhausted_raises_rate_limit(self):
        respx.get(URL).mock(
            return_value=httpx.Response(400, json={"error": {"message": "limit", "code": 613}})
        )

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(RetryConfig(max_retries=1)) as client:
                with pytest.raises(RateLimitError) as exc_info:
                    await client.get(URL)

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_after_header_honoured_and_capped(self):
        respx.get(URL).mock(side_effect=[
            httpx.Response(429, headers={"Retry-After": "7"}),
            httpx.Response(429, headers={"Retry-After": "600"}),
            httpx.Response(200, json={}),
        ])

        with patch("alertcpl.insights.http_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with HTTPClient(RetryConfig(max_retries=2, max_backoff_seconds=30.0)) as client:
                await client.get(URL)

        assert [c.args[0] for c in sleep.await_args_list] == [7.0, 30.0]


def test_redact_drops_query_string():
    assert _redact(f"{URL}?access_token=secret") == URL
