from __future__ import annotations

import json
import traceback
from typing import Any, Dict, Optional

import httpx
import structlog

from vplan.config import settings

log = structlog.get_logger(__name__)

MAX_FIELD = 1500
MAX_CONTENT = 2000  # Discord rejects longer messages


def sanitize(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value[:MAX_FIELD]
    try:
        return json.dumps(value, default=str)[:MAX_FIELD]
    except (TypeError, ValueError):
        return str(value)[:MAX_FIELD]


def format_alert(
    message: str,
    severity: str = "info",
    component: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
    error: Optional[BaseException] = None,
) -> str:
    tag = f"[{component}] " if component else ""
    lines = [f"**{severity.upper()}** {tag}{sanitize(message)}"]
    if error is not None:
        lines.append("Error: " + sanitize(str(error) or type(error).__name__))
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            lines.append("Stack:```" + stack[:MAX_FIELD] + "```")
        code = getattr(error, "error_code", None) or getattr(error, "code", None)
        if code:
            lines.append(f"Code: {sanitize(code)}")
    for key, value in (extra or {}).items():
        lines.append(f"{key}: {sanitize(value)}")
    return "\n".join(lines)[:MAX_CONTENT]


class AlertNotifier:
    """
    Best-effort webhook notifications. ``notify`` never raises: a failed
    alert is logged locally and otherwise ignored so it cannot mask or
    duplicate the outcome being reported.
    """

    def __init__(
        self,
        webhook_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.webhook_url = webhook_url
        self._client = client
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def _post(self, content: str) -> None:
        payload = {"content": content}
        if self._client is not None:
            resp = await self._client.post(self.webhook_url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.webhook_url, json=payload)
        resp.raise_for_status()

    async def notify(
        self,
        message: str,
        severity: str = "info",
        component: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if not self.enabled:
            return
        try:
            content = format_alert(message, severity, component, extra, error)
            await self._post(content)
            log.info("alert.sent", severity=severity, component=component)
        except Exception as exc:
            # last resort: log only, never alert about a failed alert
            log.error("alert.send_failed", error=str(exc), severity=severity)


def get_notifier() -> AlertNotifier:
    return AlertNotifier(settings.DISCORD_WEBHOOK_URL)
