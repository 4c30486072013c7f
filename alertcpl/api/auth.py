"""
Header-based authentication for the HTTP API.

- ``X-API-KEY`` guards the dashboard endpoints. With ``API_KEYS`` unset the
  API runs open (dev mode).
- ``X-TRIGGER-SECRET`` guards ``POST /engine/trigger``. With
  ``TRIGGER_SECRET`` unset the trigger is disabled rather than open.

Both comparisons are constant-time.
"""

import hmac

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from alertcpl.config.settings import get_settings

DEV_MODE_KEY = "dev-mode"

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)
trigger_secret_header = APIKeyHeader(name="X-TRIGGER-SECRET", auto_error=False)


def _matches(candidate: str, expected: str) -> bool:
    return hmac.compare_digest(candidate.encode(), expected.encode())


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """Dependency returning the caller's key, or ``dev-mode`` when keys are not configured."""
    configured = get_settings().api_keys
    if not configured:
        return DEV_MODE_KEY

    if not api_key:
        raise _unauthorized("Missing API key. Provide X-API-KEY header.")

    keys = (k.strip() for k in configured.split(","))
    if not any(_matches(api_key, key) for key in keys if key):
        raise _unauthorized("Invalid API key")
    return api_key


async def verify_trigger_secret(
    secret: str | None = Security(trigger_secret_header),
) -> None:
    """503 when the trigger is disabled, 401 when the secret is missing or wrong."""
    expected = get_settings().trigger_secret
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Manual trigger is disabled. Set TRIGGER_SECRET to enable it.",
        )

    if not secret or not _matches(secret, expected):
        raise _unauthorized("Invalid trigger secret")
