"""
Discord webhook notifier.
"""

import time
from typing import Any

import requests

from quotewatch.rules.engine import Notification
from quotewatch.rules.types import AlertCondition
from .base import Notifier, NotificationResult


class DiscordNotifier(Notifier):
    """Sends notifications via Discord webhook."""

    COLOR_RISE = 0xFF4D4F  # Red
    COLOR_FALL = 0x52C41A  # Green

    def __init__(self, webhook_url: str, mention: bool = False):
        """
        Initialize Discord notifier.

        Args:
            webhook_url: Discord webhook URL
            mention: Whether to @here on every alert
        """
        self.webhook_url = webhook_url
        self.mention = mention

    def send(self, notification: Notification) -> NotificationResult:
        """Send notification to Discord."""
        channel = notification.channel.value
        try:
            payload = self._create_payload(notification)
            response = self._send_webhook(payload)

            if response.ok:
                return NotificationResult(success=True, channel=channel)
            else:
                return NotificationResult(
                    success=False,
                    channel=channel,
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel=channel,
                error=f"Connection error: {str(e)}",
            )
        except requests.RequestException as e:
            return NotificationResult(
                success=False,
                channel=channel,
                error=str(e),
            )

    def _send_webhook(self, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=10,
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(float(retry_after))
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=10,
            )

        return response

    def _create_payload(self, notification: Notification) -> dict[str, Any]:
        """Create Discord webhook payload."""
        payload: dict[str, Any] = {
            "embeds": [self._create_embed(notification)],
        }
        if self.mention:
            payload["content"] = "@here"
        return payload

    def _create_embed(self, notification: Notification) -> dict[str, Any]:
        """Create Discord embed for a notification."""
        return {
            "title": notification.title,
            "description": notification.message,
            "color": self._get_color(notification),
            "fields": [
                {"name": "Code", "value": notification.code, "inline": True},
                {"name": "Price", "value": f"{notification.price:.2f}", "inline": True},
            ],
            "timestamp": notification.triggered_at.isoformat(),
        }

    def _get_color(self, notification: Notification) -> int:
        """Red for rise alerts, green for drop alerts."""
        if notification.condition == AlertCondition.BELOW:
            return self.COLOR_FALL
        return self.COLOR_RISE
