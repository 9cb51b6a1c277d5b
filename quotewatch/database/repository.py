"""
Repository classes for watchlist and alert persistence.
"""

import json
from datetime import datetime
from typing import Optional

from quotewatch.rules.types import (
    AlertCondition,
    AlertRule,
    AlertType,
    NotificationChannels,
    TimePeriod,
)
from quotewatch.watchlist.models import Group, SortState, SortType, WatchEntry
from .connection import Database


class WatchlistRepository:
    """Persists watch entries, groups and sort state."""

    def __init__(self, db: Database):
        self.db = db

    def load_entries(self) -> list[WatchEntry]:
        """Load entries in insertion order."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM watchlist ORDER BY position")
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def save_entries(self, entries: list[WatchEntry]) -> None:
        """Replace all stored entries."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM watchlist")
        cursor.executemany(
            """
            INSERT INTO watchlist (code, name, group_ids, manual_rank, position)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (
                    entry.code,
                    entry.name,
                    json.dumps(sorted(entry.group_ids)),
                    entry.manual_rank,
                    position,
                )
                for position, entry in enumerate(entries)
            ],
        )
        self.db.connection.commit()

    def load_groups(self) -> list[Group]:
        """Load groups in display order."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM watch_groups ORDER BY position")
        return [
            Group(id=row["id"], name=row["name"], color=row["color"], order=row["position"])
            for row in cursor.fetchall()
        ]

    def save_groups(self, groups: list[Group]) -> None:
        """Replace all stored groups."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM watch_groups")
        cursor.executemany(
            "INSERT INTO watch_groups (id, name, color, position) VALUES (?, ?, ?, ?)",
            [(group.id, group.name, group.color, group.order) for group in groups],
        )
        self.db.connection.commit()

    def load_sort_state(self) -> SortState:
        """Load sort state, falling back to defaults."""
        raw = self._get_setting("sort_state")
        if raw is None:
            return SortState()
        data = json.loads(raw)
        return SortState(
            sort_type=SortType(data.get("sort_type", "default")),
            is_manual_sort=bool(data.get("is_manual_sort", False)),
            selected_group_id=data.get("selected_group_id"),
        )

    def save_sort_state(self, state: SortState) -> None:
        """Store sort state."""
        self._set_setting(
            "sort_state",
            json.dumps({
                "sort_type": SortType(state.sort_type).value,
                "is_manual_sort": state.is_manual_sort,
                "selected_group_id": state.selected_group_id,
            }),
        )

    def _get_setting(self, key: str) -> Optional[str]:
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row["value"] if row else None

    def _set_setting(self, key: str, value: str) -> None:
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        self.db.connection.commit()

    def _row_to_entry(self, row) -> WatchEntry:
        """Convert database row to WatchEntry."""
        return WatchEntry(
            code=row["code"],
            name=row["name"],
            group_ids=set(json.loads(row["group_ids"])),
            manual_rank=row["manual_rank"],
        )


class AlertRepository:
    """CRUD operations for alert rules."""

    def __init__(self, db: Database):
        self.db = db

    def list_all(self) -> list[AlertRule]:
        """List alerts in creation order."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alerts ORDER BY created_at, id")
        return [self._row_to_alert(row) for row in cursor.fetchall()]

    def get_by_id(self, alert_id: str) -> Optional[AlertRule]:
        """Get alert by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_alert(row)

    def save(self, alerts: list[AlertRule]) -> None:
        """Insert or update alerts."""
        cursor = self.db.connection.cursor()
        cursor.executemany(
            """
            INSERT INTO alerts (
                id, code, name, type, condition, target_value, base_price,
                time_period, notify_tray, notify_desktop, triggered,
                last_trigger_price, enabled, created_at, triggered_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                code = excluded.code,
                name = excluded.name,
                type = excluded.type,
                condition = excluded.condition,
                target_value = excluded.target_value,
                base_price = excluded.base_price,
                time_period = excluded.time_period,
                notify_tray = excluded.notify_tray,
                notify_desktop = excluded.notify_desktop,
                triggered = excluded.triggered,
                last_trigger_price = excluded.last_trigger_price,
                enabled = excluded.enabled,
                triggered_at = excluded.triggered_at
            """,
            [self._alert_to_row(alert) for alert in alerts],
        )
        self.db.connection.commit()

    def delete(self, alert_id: str) -> None:
        """Delete an alert."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
        self.db.connection.commit()

    def _alert_to_row(self, alert: AlertRule) -> tuple:
        return (
            alert.id,
            alert.code,
            alert.name,
            AlertType(alert.type).value,
            AlertCondition(alert.condition).value,
            alert.target_value,
            alert.base_price,
            TimePeriod(alert.time_period).value,
            1 if alert.notifications.tray else 0,
            1 if alert.notifications.desktop else 0,
            1 if alert.triggered else 0,
            alert.last_trigger_price,
            1 if alert.enabled else 0,
            alert.created_at.isoformat(),
            alert.triggered_at.isoformat() if alert.triggered_at else None,
        )

    def _row_to_alert(self, row) -> AlertRule:
        """Convert database row to AlertRule."""
        return AlertRule(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            type=AlertType(row["type"]),
            condition=AlertCondition(row["condition"]),
            target_value=row["target_value"],
            base_price=row["base_price"],
            time_period=TimePeriod(row["time_period"]),
            notifications=NotificationChannels(
                tray=bool(row["notify_tray"]),
                desktop=bool(row["notify_desktop"]),
            ),
            triggered=bool(row["triggered"]),
            last_trigger_price=row["last_trigger_price"],
            enabled=bool(row["enabled"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            triggered_at=(
                datetime.fromisoformat(row["triggered_at"])
                if row["triggered_at"]
                else None
            ),
        )
