"""Meta Graph API insights: per-ad spend and lead samples for monitored accounts."""

from alertcpl.insights.client import MetaInsightsClient, MetricsSourceError
from alertcpl.insights.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)
from alertcpl.insights.schemas import LongLivedToken, MetricSample

__all__ = [
    "HTTPClient",
    "HTTPClientError",
    "LongLivedToken",
    "MetaInsightsClient",
    "MetricSample",
    "MetricsSourceError",
    "RateLimitError",
    "RetryConfig",
]
