"""ntfy.sh push notification service."""
import json
import logging
import ssl

import aiohttp
import certifi

from ..config import NtfyConfig
from ..models import AlertPayload, AlertType, NotificationSettings, Severity

logger = logging.getLogger(__name__)

# ntfy priorities: 1 (min) .. 5 (max/urgent)
_PRIORITY = {
    Severity.MIN: 1,
    Severity.LOW: 2,
    Severity.DEFAULT: 3,
    Severity.HIGH: 4,
    Severity.URGENT: 5,
}

_ICON = {
    AlertType.DEPEG: "⚠️",
    AlertType.APY_DROP: "\U0001f4c9",
}


def sanitize_header(value: str) -> str:
    """Drop characters outside Latin-1; HTTP header values cannot carry them."""
    return "".join(ch for ch in value if ord(ch) <= 0xFF)


def _tags(payload: AlertPayload) -> list[str]:
    if payload.type is AlertType.DEPEG:
        tags = ["warning", str(payload.metadata.get("symbol", "")).lower()]
    else:
        tags = ["apy", "low_yield"]
    tags.append(payload.type.value)
    return [t for t in dict.fromkeys(tags) if t]


class NtfyNotifier:
    """Publish alerts to each user's ntfy topic."""

    def __init__(self, config: NtfyConfig) -> None:
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self.dashboard_url = config.dashboard_url

    def _headers(self, payload: AlertPayload) -> dict[str, str]:
        headers = {
            "Title": sanitize_header(payload.title),
            "Priority": str(_PRIORITY.get(payload.severity, 3)),
            "Tags": sanitize_header(",".join(_tags(payload))),
            "Content-Type": "text/plain; charset=utf-8",
        }
        if self.dashboard_url:
            actions = [{"action": "view", "label": "View Dashboard", "url": self.dashboard_url}]
            headers["Actions"] = sanitize_header(json.dumps(actions))
        return headers

    async def send_alert(
        self, payload: AlertPayload, settings: NotificationSettings
    ) -> bool:
        """Publish to the user's topic; users without a topic are skipped."""
        if not settings.ntfy_topic:
            logger.debug("User %s has no ntfy topic, skipping", payload.user_id)
            return False

        url = f"{self.base_url}/{settings.ntfy_topic}"
        body = f"{_ICON[payload.type]} {payload.message}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
                async with session.post(
                    url, data=body.encode("utf-8"), headers=self._headers(payload)
                ) as response:
                    if response.status >= 400:
                        logger.error(
                            "Failed to send ntfy notification: %s", response.status
                        )
                        return False
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("Error sending ntfy notification: %s", e)
            return False

        logger.info("Sent ntfy notification to topic %s: %s", settings.ntfy_topic, payload.title)
        return True

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """ntfy topics are per user; there is no operator log channel, so this is a no-op."""
        return False
