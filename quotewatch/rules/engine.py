"""
Alert evaluation engine.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from quotewatch.data.quotes import Quote, QuoteSnapshot
from .store import AlertStore
from .types import (
    AlertCondition,
    AlertRule,
    AlertType,
    Channel,
    TimePeriod,
)

# Re-export for convenience
__all__ = ["AlertEngine", "Notification", "Channel", "period_start"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A request to deliver one fired alert on one channel."""

    alert_id: str
    channel: Channel
    code: str
    name: str
    title: str
    message: str
    price: float
    condition: AlertCondition
    triggered_at: datetime


def period_start(period: TimePeriod, moment: datetime) -> Optional[datetime]:
    """
    Start of the reset window containing `moment`.

    Windows start at midnight of the day, of Monday, or of the first day
    of the month in moment's timezone. Permanent alerts have no window.
    """
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == TimePeriod.DAY:
        return midnight
    elif period == TimePeriod.WEEK:
        return midnight - timedelta(days=midnight.weekday())
    elif period == TimePeriod.MONTH:
        return midnight.replace(day=1)
    return None


def build_message(rule: AlertRule, quote: Quote) -> tuple[str, str]:
    """Create the notification title and body for a fired alert."""
    name = rule.name or quote.name or rule.code
    price = quote.price

    if rule.type == AlertType.PRICE:
        title = f"{name} price alert"
        verb = "risen to" if rule.condition == AlertCondition.ABOVE else "fallen to"
        body = (
            f"Current price {price:.2f} has {verb} "
            f"target price {rule.target_value:.2f}"
        )
        return title, body

    percent = rule.comparison_value(price)
    if rule.condition == AlertCondition.ABOVE:
        title = f"{name} rise alert"
        body = (
            f"Current price {price:.2f}, change {percent:+.2f}%, "
            f"reached target rise {rule.target_value:+.2f}%"
        )
    else:
        title = f"{name} drop alert"
        body = (
            f"Current price {price:.2f}, change {percent:+.2f}%, "
            f"reached target drop {rule.target_value:+.2f}%"
        )
    return title, body


class AlertEngine:
    """Evaluates stored alerts against a quote snapshot."""

    def __init__(
        self,
        store: AlertStore,
        timezone: tzinfo,
        rearm_on_cross: bool = False,
    ):
        """
        Initialize engine.

        Args:
            store: Alert store to evaluate and update
            timezone: Timezone reset windows are computed in
            rearm_on_cross: Re-arm a fired alert once its condition stops
                holding, so the next crossing fires again
        """
        self.store = store
        self.timezone = timezone
        self.rearm_on_cross = rearm_on_cross

    def evaluate(
        self,
        snapshot: QuoteSnapshot,
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        """
        Run one evaluation pass.

        Args:
            snapshot: Immutable quote snapshot to evaluate against
            now: Evaluation time; defaults to the current time

        Returns:
            One notification per enabled channel of every alert that fired
        """
        now = self._local(now or datetime.now(self.timezone))
        notifications: list[Notification] = []
        changed: list[AlertRule] = []

        with self.store.lock:
            for rule in self.store.list_all():
                if not rule.enabled:
                    continue

                if rule.triggered and self._period_elapsed(rule, now):
                    logger.info(
                        f"Alert {rule.id} re-armed for new {rule.time_period.value} window"
                    )
                    rule.arm()
                    changed.append(rule)

                quote = snapshot.get(rule.code)
                if quote is None:
                    continue

                satisfied = rule.is_satisfied(quote.price)

                if rule.triggered:
                    if not satisfied and self.rearm_on_cross:
                        logger.debug(f"Alert {rule.id} re-armed at {quote.price}")
                        rule.arm()
                        changed.append(rule)
                    continue

                if satisfied:
                    if self._quote_predates_window(rule, quote, now):
                        logger.debug(
                            f"Alert {rule.id} skipped: quote for {rule.code} from "
                            f"{quote.timestamp} predates the current window"
                        )
                        continue
                    rule.triggered = True
                    rule.last_trigger_price = quote.price
                    rule.triggered_at = now
                    changed.append(rule)
                    notifications.extend(self._notifications(rule, quote, now))
                    logger.info(
                        f"Alert {rule.id} fired: {rule.code} {rule.type.value} "
                        f"{rule.condition.value} {rule.target_value} at {quote.price}"
                    )

            self.store.save(changed)

        return notifications

    def _notifications(
        self, rule: AlertRule, quote: Quote, now: datetime
    ) -> list[Notification]:
        title, message = build_message(rule, quote)
        return [
            Notification(
                alert_id=rule.id,
                channel=channel,
                code=rule.code,
                name=rule.name or quote.name,
                title=title,
                message=message,
                price=quote.price,
                condition=rule.condition,
                triggered_at=now,
            )
            for channel in rule.notifications.enabled()
        ]

    def _period_elapsed(self, rule: AlertRule, now: datetime) -> bool:
        """Whether `now` lies in a later reset window than the last trigger."""
        if rule.triggered_at is None:
            return False
        current = period_start(rule.time_period, now)
        if current is None:
            return False
        return period_start(rule.time_period, self._local(rule.triggered_at)) < current

    def _quote_predates_window(self, rule: AlertRule, quote: Quote, now: datetime) -> bool:
        """
        Whether the quote was taken before the rule's current reset window.

        Quotes of codes that are no longer polled stay cached for their
        alerts; they must not fire again after a period reset.
        """
        current = period_start(rule.time_period, now)
        if current is None:
            return False
        return self._local(quote.timestamp) < current

    def _local(self, moment: datetime) -> datetime:
        # Naive datetimes are taken to be in the configured timezone
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.timezone)
        return moment.astimezone(self.timezone)
