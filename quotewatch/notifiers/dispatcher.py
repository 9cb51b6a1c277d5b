"""
Routes notifications to the notifier configured for each channel.
"""

import logging
from typing import Mapping, Optional

from quotewatch.rules.engine import Channel, Notification
from .base import Notifier, NotificationResult, NotifierFactory

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Delivers notifications by channel.

    Delivery failures are logged and reported in the results; they never
    affect the alert that produced the notification.
    """

    def __init__(self, notifiers: Mapping[Channel, Notifier]):
        self.notifiers = dict(notifiers)

    @classmethod
    def from_config(cls, channels: Mapping[str, dict]) -> "NotificationDispatcher":
        """
        Build a dispatcher from per-channel notifier configuration.

        Args:
            channels: Mapping of channel name ("tray", "desktop") to a
                NotifierFactory config dict
        """
        return cls({
            Channel(name): NotifierFactory.create(config)
            for name, config in channels.items()
        })

    def dispatch(self, notification: Notification) -> NotificationResult:
        """Deliver one notification on its channel."""
        channel = Channel(notification.channel)
        notifier: Optional[Notifier] = self.notifiers.get(channel)
        if notifier is None:
            logger.error(f"No notifier configured for channel {channel.value}")
            return NotificationResult(
                success=False,
                channel=channel.value,
                error="Channel not configured",
            )

        try:
            result = notifier.send(notification)
        except Exception as e:
            logger.exception(f"Notifier for {channel.value} raised: {e}")
            result = NotificationResult(success=False, channel=channel.value, error=str(e))

        if not result.success:
            logger.error(
                f"Failed to deliver alert {notification.alert_id} "
                f"on {channel.value}: {result.error}"
            )
        return result

    def dispatch_all(self, notifications: list[Notification]) -> list[NotificationResult]:
        return [self.dispatch(notification) for notification in notifications]
