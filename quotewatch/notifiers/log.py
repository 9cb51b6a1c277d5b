"""
Notifier that writes alerts to the application log.
"""

import logging

from quotewatch.rules.engine import Notification
from .base import Notifier, NotificationResult


class LogNotifier(Notifier):
    """Writes notifications to the `quotewatch.notifications` logger."""

    def __init__(self, logger_name: str = "quotewatch.notifications"):
        self.logger = logging.getLogger(logger_name)

    def send(self, notification: Notification) -> NotificationResult:
        channel = notification.channel.value
        self.logger.warning(
            f"[{channel}] {notification.title}: {notification.message} ({notification.code})"
        )
        return NotificationResult(success=True, channel=channel)
