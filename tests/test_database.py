"""
Database layer tests.
Tests for schema creation and repository persistence.
"""

from datetime import datetime

import pytest

from quotewatch.database.connection import Database
from quotewatch.database.repository import AlertRepository, WatchlistRepository
from quotewatch.rules.types import (
    AlertCondition,
    AlertRule,
    AlertType,
    NotificationChannels,
    TimePeriod,
)
from quotewatch.watchlist.models import Group, SortState, SortType, WatchEntry


class TestDatabase:
    """Test Database connection."""

    def test_initialize_creates_tables(self, db: Database):
        """Should create all tables."""
        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"watchlist", "watch_groups", "settings", "alerts"} <= tables

    def test_initialize_is_idempotent(self, db: Database):
        """Should not fail when run twice."""
        db.initialize()

    def test_file_database_creates_parent(self, tmp_path):
        """Should create missing parent directories."""
        path = tmp_path / "nested" / "quotewatch.db"
        database = Database(str(path))
        database.initialize()
        database.close()
        assert path.exists()

    def test_closed_connection_raises(self):
        """Should raise once closed."""
        import sqlite3

        database = Database(":memory:")
        database.close()
        with pytest.raises(sqlite3.ProgrammingError):
            database.connection


class TestWatchlistRepository:
    """Test watchlist persistence."""

    @pytest.fixture
    def repo(self, db: Database) -> WatchlistRepository:
        return WatchlistRepository(db)

    def test_entries_keep_order(self, repo):
        """Should load entries in saved order with groups and ranks."""
        repo.save_entries([
            WatchEntry(code="B", name="Beta", manual_rank=1, group_ids={"g2", "g1"}),
            WatchEntry(code="A", manual_rank=0),
        ])
        entries = repo.load_entries()
        assert [e.code for e in entries] == ["B", "A"]
        assert entries[0].group_ids == {"g1", "g2"}
        assert entries[0].manual_rank == 1

    def test_save_replaces(self, repo):
        """Should drop entries missing from the latest save."""
        repo.save_entries([WatchEntry(code="A"), WatchEntry(code="B")])
        repo.save_entries([WatchEntry(code="B")])
        assert [e.code for e in repo.load_entries()] == ["B"]

    def test_groups(self, repo):
        repo.save_groups([
            Group(name="Tech", order=0, id="group_a"),
            Group(name="Banks", color="#ff0000", order=1, id="group_b"),
        ])
        groups = repo.load_groups()
        assert [g.id for g in groups] == ["group_a", "group_b"]
        assert groups[1].color == "#ff0000"

    def test_sort_state_defaults(self, repo):
        """Should return defaults when nothing is stored."""
        assert repo.load_sort_state() == SortState()

    def test_sort_state_round_trip(self, repo):
        state = SortState(sort_type=SortType.FALL, is_manual_sort=True, selected_group_id="group_a")
        repo.save_sort_state(state)
        repo.save_sort_state(state)
        assert repo.load_sort_state() == state


class TestAlertRepository:
    """Test alert persistence."""

    @pytest.fixture
    def repo(self, db: Database) -> AlertRepository:
        return AlertRepository(db)

    @pytest.fixture
    def rule(self) -> AlertRule:
        return AlertRule(
            code="SH600000",
            name="Bank",
            type=AlertType.PERCENT,
            condition=AlertCondition.BELOW,
            target_value=-3.0,
            base_price=10.0,
            time_period=TimePeriod.MONTH,
            notifications=NotificationChannels(tray=False, desktop=True),
            created_at=datetime(2026, 10, 1, 9, 30),
        )

    def test_save_and_get(self, repo, rule):
        """Should store every field."""
        repo.save([rule])
        loaded = repo.get_by_id(rule.id)
        assert loaded == rule

    def test_save_updates_existing(self, repo, rule):
        """Should update trigger state on a second save."""
        repo.save([rule])
        rule.triggered = True
        rule.last_trigger_price = 9.69
        rule.triggered_at = datetime(2026, 10, 19, 10, 0)
        repo.save([rule])

        loaded = repo.get_by_id(rule.id)
        assert loaded.triggered is True
        assert loaded.last_trigger_price == 9.69
        assert loaded.triggered_at == datetime(2026, 10, 19, 10, 0)
        assert len(repo.list_all()) == 1

    def test_list_in_creation_order(self, repo, rule):
        later = AlertRule(
            code="AAPL",
            name="Apple",
            type=AlertType.PRICE,
            condition=AlertCondition.ABOVE,
            target_value=200.0,
            base_price=0.0,
            created_at=datetime(2026, 10, 2, 9, 30),
        )
        repo.save([later, rule])
        assert [a.id for a in repo.list_all()] == [rule.id, later.id]

    def test_delete(self, repo, rule):
        repo.save([rule])
        repo.delete(rule.id)
        assert repo.get_by_id(rule.id) is None
