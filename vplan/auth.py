from __future__ import annotations
import hmac
from fastapi import Security
from fastapi.security import APIKeyHeader, APIKeyQuery
from vplan.config import settings
from vplan.exceptions import AuthenticationError, ForbiddenError


_token_header = APIKeyHeader(name="X-Alert-Token", auto_error=False)


async def require_trigger_token(
    token: str | None = Security(_token_header),
) -> str:
    # no configured token means the manual trigger is closed
    if not settings.ALERT_TOKEN:
        raise AuthenticationError("Manual scrape trigger is disabled")
    if not token or not hmac.compare_digest(token, settings.ALERT_TOKEN):
        raise AuthenticationError("Invalid or missing trigger token")
    return token


_alert_query = APIKeyQuery(name="token", auto_error=False)


async def require_alert_token(
    token: str | None = Security(_alert_query),
) -> None:
    # open when no token is configured, unlike the scrape trigger
    if not settings.ALERT_TOKEN:
        return
    if not token or not hmac.compare_digest(token, settings.ALERT_TOKEN):
        raise ForbiddenError("Invalid alert token")
