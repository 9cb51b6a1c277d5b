"""
Alert rule types and validation.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from quotewatch.errors import AlertValidationError


class AlertType(str, Enum):
    """What an alert compares against its target."""

    PRICE = "price"
    PERCENT = "percent"


class AlertCondition(str, Enum):
    """Direction of the threshold."""

    ABOVE = "above"
    BELOW = "below"


class TimePeriod(str, Enum):
    """Window after which a fired alert re-arms."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    PERMANENT = "permanent"


class Channel(str, Enum):
    """Notification delivery channels."""

    TRAY = "tray"
    DESKTOP = "desktop"


@dataclass
class NotificationChannels:
    """Channels enabled for an alert."""

    tray: bool = True
    desktop: bool = False

    def enabled(self) -> list[Channel]:
        channels = []
        if self.tray:
            channels.append(Channel.TRAY)
        if self.desktop:
            channels.append(Channel.DESKTOP)
        return channels


@dataclass
class AlertRule:
    """A user price or percent alert."""

    code: str
    name: str
    type: AlertType
    condition: AlertCondition
    target_value: float
    base_price: float
    time_period: TimePeriod = TimePeriod.DAY
    notifications: NotificationChannels = field(default_factory=NotificationChannels)
    triggered: bool = False
    last_trigger_price: Optional[float] = None
    enabled: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    triggered_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")

    def __post_init__(self) -> None:
        # Invalid values are left as given for validate_alert to report
        for name, enum in (
            ("type", AlertType),
            ("condition", AlertCondition),
            ("time_period", TimePeriod),
        ):
            try:
                setattr(self, name, enum(getattr(self, name)))
            except ValueError:
                pass

    def comparison_value(self, price: float) -> float:
        """Value compared with target_value for the given price."""
        if self.type == AlertType.PERCENT:
            return (price - self.base_price) / self.base_price * 100
        return price

    def is_satisfied(self, price: float) -> bool:
        """Whether the condition holds at the given price."""
        value = self.comparison_value(price)
        if self.condition == AlertCondition.ABOVE:
            return value >= self.target_value
        return value <= self.target_value

    def arm(self) -> None:
        """Return to the armed state."""
        self.triggered = False
        self.last_trigger_price = None
        self.triggered_at = None


# Fields whose change alters the terms an alert is evaluated under
THRESHOLD_FIELDS = ("type", "condition", "target_value", "base_price")

EDITABLE_FIELDS = THRESHOLD_FIELDS + ("name", "time_period", "notifications", "enabled")


def validate_alert(rule: AlertRule) -> None:
    """
    Validate alert parameters.

    Raises:
        AlertValidationError: If the alert cannot be stored
    """
    if not rule.code or not rule.code.strip():
        raise AlertValidationError("Alert code cannot be empty")

    try:
        alert_type = AlertType(rule.type)
        condition = AlertCondition(rule.condition)
        TimePeriod(rule.time_period)
    except ValueError as e:
        raise AlertValidationError(str(e))

    if alert_type == AlertType.PRICE:
        if rule.target_value <= 0:
            raise AlertValidationError(
                f"Target price must be positive: {rule.target_value}"
            )
    else:
        if rule.base_price <= 0:
            raise AlertValidationError(
                f"Base price must be positive for percent alerts: {rule.base_price}"
            )
        if condition == AlertCondition.ABOVE and rule.target_value <= 0:
            raise AlertValidationError(
                f"Rise percent must be positive: {rule.target_value}"
            )
        if condition == AlertCondition.BELOW and rule.target_value >= 0:
            raise AlertValidationError(
                f"Drop percent must be negative: {rule.target_value}"
            )

    if not rule.notifications.enabled():
        raise AlertValidationError("At least one notification channel is required")
