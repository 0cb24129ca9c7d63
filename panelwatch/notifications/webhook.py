"""Alert webhooks: one POST per newly raised alert.

Slack and Discord incoming-webhook URLs get the single-field body those
services expect. Any other URL receives the alert payload itself with a
``text`` summary added.
"""

from enum import Enum

import httpx

from ..utils.logging import get_logger

logger = get_logger("notifications.webhook")


class WebhookPlatform(str, Enum):
    GENERIC = "generic"
    SLACK = "slack"
    DISCORD = "discord"


_PLATFORM_HOSTS = {
    "hooks.slack.com": WebhookPlatform.SLACK,
    "discord.com": WebhookPlatform.DISCORD,
    "discordapp.com": WebhookPlatform.DISCORD,
}


def detect_platform(url: str) -> WebhookPlatform:
    host = httpx.URL(url).host
    for suffix, platform in _PLATFORM_HOSTS.items():
        if host == suffix or host.endswith("." + suffix):
            return platform
    return WebhookPlatform.GENERIC


def build_message(payload: dict) -> str:
    """Plain-text summary: headline, then description, server and time lines."""
    headline = "[PANELWATCH] {}: {}".format(
        str(payload.get("severity", "info")).upper(),
        payload.get("title", "Server Alert"),
    )
    extras = (
        ("", payload.get("description")),
        ("Server: ", payload.get("entity_id")),
        ("Time: ", payload.get("timestamp")),
    )
    return "\n".join([headline] + [f"{label}{value}" for label, value in extras if value])


class WebhookSender:
    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout

    def _format_payload(self, url: str, payload: dict) -> dict:
        message = build_message(payload)
        platform = detect_platform(url)
        if platform is WebhookPlatform.SLACK:
            return {"text": message}
        if platform is WebhookPlatform.DISCORD:
            return {"content": message}
        return {"text": message, **payload}

    async def send(self, url: str, payload: dict, headers: dict | None = None) -> bool:
        """POST ``payload`` to ``url``; True on a 2xx response.

        Delivery failures are logged and reported through the return value,
        never raised.
        """
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        body = self._format_payload(url, payload)
        log = logger.bind(url=url, platform=detect_platform(url).value)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=body, headers=request_headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.error("webhook_rejected", status=exc.response.status_code, body=exc.response.text[:500])
            return False
        except httpx.HTTPError as exc:
            log.error("webhook_send_error", error=str(exc))
            return False

        log.info("webhook_sent", status=response.status_code)
        return True
