"""
Watchlist store and ordering tests.
"""

import pytest

from quotewatch.database.repository import WatchlistRepository
from quotewatch.errors import GroupValidationError
from quotewatch.watchlist.models import (
    MAX_GROUP_COUNT,
    SortType,
    WatchEntry,
    validate_group_name,
)
from quotewatch.watchlist.ordering import order_entries
from quotewatch.watchlist.store import WatchlistStore


def codes_of(entries):
    return [entry.code for entry in entries]


class TestOrderEntries:
    """Test the pure ordering function."""

    @pytest.fixture
    def entries(self):
        return [
            WatchEntry(code="A", manual_rank=2, group_ids={"g1"}),
            WatchEntry(code="B", manual_rank=0),
            WatchEntry(code="C", manual_rank=1, group_ids={"g1"}),
        ]

    @pytest.fixture
    def quotes(self, make_quote):
        return {
            "A": make_quote("A", change_percent=5.0),
            "B": make_quote("B", change_percent=2.0),
        }

    def test_rise_with_missing_quote(self, entries, quotes):
        """Should sort rise as A, B and keep quote-less C in place."""
        result = order_entries(entries, quotes, sort_type=SortType.RISE)
        assert codes_of(result) == ["A", "B", "C"]

    def test_fall_with_missing_quote(self, entries, quotes):
        """Should sort fall as B, A and keep quote-less C in place."""
        result = order_entries(entries, quotes, sort_type=SortType.FALL)
        assert codes_of(result) == ["B", "A", "C"]

    def test_default_keeps_insertion_order(self, entries, quotes):
        """Should return entries as stored."""
        result = order_entries(entries, quotes)
        assert codes_of(result) == ["A", "B", "C"]

    def test_manual_uses_rank_and_ignores_sort_type(self, entries, quotes):
        """Should order by manual_rank whatever the sort type."""
        for sort_type in SortType:
            result = order_entries(
                entries, quotes, sort_type=sort_type, is_manual_sort=True
            )
            assert codes_of(result) == ["B", "C", "A"]

    def test_group_filter(self, entries, quotes):
        """Should keep only entries in the selected group."""
        result = order_entries(entries, quotes, selected_group_id="g1")
        assert codes_of(result) == ["A", "C"]

    def test_group_filter_with_manual_sort(self, entries, quotes):
        """Should filter first, then apply manual order."""
        result = order_entries(
            entries, quotes, is_manual_sort=True, selected_group_id="g1"
        )
        assert codes_of(result) == ["C", "A"]

    def test_sort_is_stable_for_equal_changes(self, make_quote):
        """Should keep stored order for equal change percents."""
        entries = [WatchEntry(code=c) for c in ("X", "Y", "Z")]
        quotes = {c: make_quote(c, change_percent=1.0) for c in ("X", "Y", "Z")}
        result = order_entries(entries, quotes, sort_type=SortType.RISE)
        assert codes_of(result) == ["X", "Y", "Z"]

    def test_does_not_mutate_input(self, entries, quotes):
        """Should return a new list."""
        original = list(entries)
        order_entries(entries, quotes, sort_type=SortType.FALL)
        assert entries == original


class TestWatchlistEntries:
    """Test entry mutations."""

    @pytest.fixture
    def store(self):
        store = WatchlistStore()
        store.load()
        return store

    def test_add_assigns_dense_ranks(self, store):
        """Should give each new entry the next manual rank."""
        for code in ("sh600000", "SZ000001", "AAPL"):
            store.add_entry(code)
        assert store.codes() == ["SH600000", "SZ000001", "AAPL"]
        assert [e.manual_rank for e in store.entries] == [0, 1, 2]

    def test_add_existing_is_noop(self, store):
        """Should not duplicate an existing code."""
        store.add_entry("AAPL", name="Apple")
        store.add_entry("aapl", name="Other")
        assert store.codes() == ["AAPL"]
        assert store.get_entry("AAPL").name == "Apple"

    def test_add_empty_code_rejected(self, store):
        """Should reject an empty code."""
        with pytest.raises(ValueError):
            store.add_entry("  ")

    def test_remove_redensifies_ranks(self, store):
        """Should keep ranks dense after removal."""
        for code in ("A", "B", "C"):
            store.add_entry(code)
        assert store.remove_entry("B") is True
        assert [(e.code, e.manual_rank) for e in store.entries] == [("A", 0), ("C", 1)]
        assert store.remove_entry("B") is False

    def test_remove_keeps_cached_quote(self, store, make_quote):
        """Should keep the quote until garbage collection."""
        store.add_entry("A")
        store.update_quotes([make_quote("A")])
        store.remove_entry("A")
        assert "A" in store.snapshot

    def test_unknown_group_rejected(self, store):
        """Should reject group ids that don't exist."""
        with pytest.raises(KeyError):
            store.add_entry("A", group_ids=["missing"])


class TestQuoteUpdates:
    """Test quote merging."""

    @pytest.fixture
    def store(self):
        return WatchlistStore()

    def test_merge_not_replace(self, store, make_quote):
        """Should overwrite overlapping codes and keep untouched ones."""
        store.update_quotes([make_quote("A", price=10), make_quote("B", price=20)])
        store.update_quotes([make_quote("B", price=21), make_quote("C", price=30)])

        snapshot = store.snapshot
        assert snapshot["A"].price == 10
        assert snapshot["B"].price == 21
        assert snapshot["C"].price == 30

    def test_previous_snapshot_unchanged(self, store, make_quote):
        """Should never mutate a snapshot handed out earlier."""
        store.update_quotes([make_quote("A", price=10)])
        before = store.snapshot
        store.update_quotes([make_quote("A", price=11), make_quote("B")])

        assert before["A"].price == 10
        assert "B" not in before
        with pytest.raises(TypeError):
            before["A"] = make_quote("A")

    def test_last_writer_wins_within_batch(self, store, make_quote):
        """Should keep the last quote for a code repeated in one batch."""
        store.update_quotes([make_quote("A", price=1), make_quote("A", price=2)])
        assert store.snapshot["A"].price == 2

    def test_update_after_close_is_noop(self, store, make_quote):
        """Should discard quotes arriving after close."""
        store.close()
        assert store.update_quotes([make_quote("A")]) is False
        assert "A" not in store.snapshot

    def test_collect_garbage(self, store, make_quote):
        """Should drop quotes for codes neither watched nor retained."""
        store.add_entry("A")
        store.update_quotes([make_quote(c) for c in ("A", "B", "C")])
        dropped = store.collect_garbage(retain=["c"])
        assert dropped == 1
        assert set(store.snapshot) == {"A", "C"}


class TestSortState:
    """Test sort type, manual ordering and group selection."""

    @pytest.fixture
    def store(self, make_quote):
        store = WatchlistStore()
        for code in ("A", "B", "C"):
            store.add_entry(code)
        store.update_quotes([
            make_quote("A", change_percent=1.0),
            make_quote("B", change_percent=3.0),
            make_quote("C", change_percent=2.0),
        ])
        return store

    def test_rise_exits_manual_mode(self, store):
        """Should leave manual mode when choosing an automatic sort."""
        store.move_to_top("C")
        assert store.sort_state.is_manual_sort
        store.set_sort_type(SortType.RISE)
        assert not store.sort_state.is_manual_sort
        assert codes_of(store.ordered()) == ["B", "C", "A"]

    def test_default_keeps_manual_mode(self, store):
        """Should stay in manual mode when default is chosen."""
        store.move_to_top("C")
        store.set_sort_type("default")
        assert store.sort_state.is_manual_sort
        assert codes_of(store.ordered()) == ["C", "A", "B"]

    def test_manual_order_stable_under_quote_changes(self, store, make_quote):
        """Should not reorder manual mode when quotes change."""
        store.move_down("A")
        before = codes_of(store.ordered())
        store.update_quotes([make_quote("A", change_percent=9.0)])
        assert codes_of(store.ordered()) == before

    def test_move_from_displayed_order(self, store):
        """Should start a manual move from the current automatic order."""
        store.set_sort_type(SortType.RISE)  # B, C, A
        assert store.move_up("A") is True
        assert codes_of(store.ordered()) == ["B", "A", "C"]
        assert sorted(e.manual_rank for e in store.entries) == [0, 1, 2]

    def test_move_out_of_bounds(self, store):
        """Should refuse moves past either end."""
        assert store.move_up("A") is False
        assert store.move_down("C") is False
        assert store.move_to_bottom("C") is False
        assert store.move_up("missing") is False

    def test_reorder_appends_unlisted(self, store):
        """Should place unlisted codes after the listed ones."""
        store.reorder(["C", "A"])
        assert codes_of(store.ordered()) == ["C", "A", "B"]
        assert store.sort_state.is_manual_sort

    def test_exit_manual_sort(self, store):
        """Should return to the automatic order."""
        store.set_sort_type(SortType.FALL)
        store.reorder(["B", "A", "C"])
        store.exit_manual_sort()
        assert codes_of(store.ordered()) == ["A", "C", "B"]

    def test_listeners_notified(self, store):
        """Should notify subscribers with the event name."""
        events = []
        unsubscribe = store.subscribe(events.append)
        store.set_sort_type(SortType.RISE)
        store.add_entry("D")
        unsubscribe()
        store.remove_entry("D")
        assert events == ["sort", "entries"]

    def test_failing_listener_does_not_break_mutation(self, store):
        """Should log listener errors and continue."""
        def broken(event):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.add_entry("D")
        assert "D" in store.codes()


class TestGroups:
    """Test group management."""

    @pytest.fixture
    def store(self):
        return WatchlistStore()

    def test_validate_group_name(self):
        """Should accept letters, digits and CJK only."""
        validate_group_name("Tech")
        validate_group_name("银行2")
        for bad in ("", "   ", "a" * 11, "bad name", "x!"):
            with pytest.raises(GroupValidationError):
                validate_group_name(bad)

    def test_group_limit(self, store):
        """Should refuse more than the maximum number of groups."""
        for i in range(MAX_GROUP_COUNT):
            store.add_group(f"g{i}")
        with pytest.raises(GroupValidationError):
            store.add_group("extra")

    def test_duplicate_group_name(self, store):
        """Should refuse duplicate names."""
        store.add_group("Tech")
        with pytest.raises(GroupValidationError):
            store.add_group("Tech")

    def test_select_and_filter(self, store):
        """Should narrow ordering to the selected group."""
        tech = store.add_group("Tech")
        store.add_entry("A", group_ids=[tech.id])
        store.add_entry("B")
        store.select_group(tech.id)
        assert codes_of(store.ordered()) == ["A"]
        store.select_group(None)
        assert codes_of(store.ordered()) == ["A", "B"]

    def test_remove_group_detaches_entries(self, store):
        """Should drop the group from entries and clear the selection."""
        tech = store.add_group("Tech")
        store.add_entry("A", group_ids=[tech.id])
        store.select_group(tech.id)
        assert store.remove_group(tech.id) is True
        assert store.get_entry("A").group_ids == set()
        assert store.sort_state.selected_group_id is None

    def test_select_unknown_group(self, store):
        """Should reject unknown group ids."""
        with pytest.raises(KeyError):
            store.select_group("missing")


class TestPersistence:
    """Test loading and saving through the repository."""

    def test_round_trip_through_repository(self, db):
        """Should restore entries, groups and sort state."""
        store = WatchlistStore(WatchlistRepository(db))
        store.load()
        tech = store.add_group("Tech")
        store.add_entry("A", name="Alpha", group_ids=[tech.id])
        store.add_entry("B")
        store.move_to_top("B")

        restored = WatchlistStore(WatchlistRepository(db))
        restored.load()
        assert restored.codes() == ["A", "B"]
        assert restored.get_entry("A").group_ids == {tech.id}
        assert restored.sort_state.is_manual_sort
        assert codes_of(restored.ordered()) == ["B", "A"]
        assert [g.name for g in restored.groups] == ["Tech"]

    def test_load_is_idempotent(self, db):
        """Should not reload unless forced."""
        store = WatchlistStore(WatchlistRepository(db))
        store.load()
        WatchlistRepository(db).save_entries([WatchEntry(code="X")])
        store.load()
        assert store.codes() == []
        store.load(force=True)
        assert store.codes() == ["X"]

    def test_save_failure_is_logged(self, db):
        """Should keep the in-memory change when saving fails."""
        store = WatchlistStore(WatchlistRepository(db))
        db.close()
        store.add_entry("A")
        assert store.codes() == ["A"]
