"""
Alert store.
"""

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING, Any, Iterable, Optional

from quotewatch.watchlist.models import normalize_code
from .types import (
    EDITABLE_FIELDS,
    THRESHOLD_FIELDS,
    AlertCondition,
    AlertRule,
    AlertType,
    NotificationChannels,
    TimePeriod,
    validate_alert,
)

if TYPE_CHECKING:
    from quotewatch.database.repository import AlertRepository

logger = logging.getLogger(__name__)


class AlertStore:
    """
    Holds configured alerts and their trigger state.

    `lock` serialises mutations with evaluation passes, so an edit never
    interleaves with the engine walking the alert set.
    """

    def __init__(self, repository: Optional["AlertRepository"] = None):
        self.repository = repository
        self.lock = threading.RLock()
        self._alerts: list[AlertRule] = []
        self._loaded = False

    def load(self, force: bool = False) -> None:
        """Load alerts from the repository once unless forced."""
        with self.lock:
            if self._loaded and not force:
                return
            if self.repository is not None:
                self._alerts = self.repository.list_all()
            self._loaded = True
        logger.info(f"Loaded {len(self._alerts)} alerts")

    def list_all(self) -> list[AlertRule]:
        with self.lock:
            return list(self._alerts)

    def get(self, alert_id: str) -> Optional[AlertRule]:
        with self.lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    return alert
        return None

    def by_code(self, code: str) -> list[AlertRule]:
        code = normalize_code(code)
        with self.lock:
            return [alert for alert in self._alerts if alert.code == code]

    def codes(self) -> set[str]:
        with self.lock:
            return {alert.code for alert in self._alerts}

    def add(
        self,
        code: str,
        name: str,
        type: AlertType,
        condition: AlertCondition,
        target_value: float,
        base_price: float,
        time_period: TimePeriod = TimePeriod.DAY,
        notifications: Optional[NotificationChannels] = None,
    ) -> AlertRule:
        """
        Create and store an alert.

        Raises:
            AlertValidationError: If parameters are invalid
        """
        rule = AlertRule(
            code=normalize_code(code),
            name=name or normalize_code(code),
            type=type,
            condition=condition,
            target_value=float(target_value),
            base_price=float(base_price),
            time_period=time_period,
            notifications=notifications or NotificationChannels(),
        )
        validate_alert(rule)

        with self.lock:
            self._alerts.append(rule)
            self.save([rule])
        logger.info(f"Added alert {rule.id} for {rule.code}")
        return rule

    def update(self, alert_id: str, **changes: Any) -> AlertRule:
        """
        Edit an alert.

        Changing type, condition, target_value or base_price re-arms the
        alert and clears last_trigger_price.

        Raises:
            KeyError: If the alert doesn't exist
            AlertValidationError: If the edited alert is invalid
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self.lock:
            rule = self.get(alert_id)
            if rule is None:
                raise KeyError(f"Unknown alert: {alert_id}")

            candidate = dataclasses.replace(rule, **changes)
            validate_alert(candidate)

            rearm = any(
                getattr(candidate, name) != getattr(rule, name)
                for name in THRESHOLD_FIELDS
                if name in changes
            )
            for name in changes:
                setattr(rule, name, getattr(candidate, name))
            if rearm:
                rule.arm()
            self.save([rule])
        return rule

    def remove(self, alert_id: str) -> bool:
        with self.lock:
            rule = self.get(alert_id)
            if rule is None:
                return False
            self._alerts.remove(rule)
            if self.repository is not None:
                try:
                    self.repository.delete(alert_id)
                except Exception as e:
                    logger.error(f"Failed to delete alert {alert_id}: {e}")
        return True

    def toggle(self, alert_id: str) -> AlertRule:
        with self.lock:
            rule = self.get(alert_id)
            if rule is None:
                raise KeyError(f"Unknown alert: {alert_id}")
            rule.enabled = not rule.enabled
            self.save([rule])
        return rule

    def reset(self, alert_id: str) -> AlertRule:
        """Re-arm a fired alert."""
        with self.lock:
            rule = self.get(alert_id)
            if rule is None:
                raise KeyError(f"Unknown alert: {alert_id}")
            rule.arm()
            self.save([rule])
        return rule

    def save(self, rules: Iterable[AlertRule]) -> None:
        """Persist the given alerts; failures are logged."""
        rules = list(rules)
        if self.repository is None or not rules:
            return
        try:
            self.repository.save(rules)
        except Exception as e:
            logger.error(f"Failed to save {len(rules)} alerts: {e}")
