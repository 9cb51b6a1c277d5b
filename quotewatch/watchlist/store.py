"""
Watchlist and quote store.
"""

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from quotewatch.data.quotes import EMPTY_SNAPSHOT, Quote, QuoteSnapshot
from quotewatch.errors import GroupValidationError
from .models import (
    DEFAULT_GROUP_COLOR,
    MAX_GROUP_COUNT,
    Group,
    SortState,
    SortType,
    WatchEntry,
    normalize_code,
    validate_group_name,
)
from .ordering import order_entries

if TYPE_CHECKING:
    from quotewatch.database.repository import WatchlistRepository

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]

EVENT_ENTRIES = "entries"
EVENT_GROUPS = "groups"
EVENT_QUOTES = "quotes"
EVENT_SORT = "sort"


class WatchlistStore:
    """
    Owns the watched entries, the latest quote per code and sort state.

    Mutations are synchronous; listeners are notified with an event name
    after each one. The quote snapshot is replaced, never mutated, so a
    reference obtained from `snapshot` stays consistent.
    """

    def __init__(self, repository: Optional["WatchlistRepository"] = None):
        self.repository = repository
        self._entries: list[WatchEntry] = []
        self._groups: list[Group] = []
        self._quotes: QuoteSnapshot = EMPTY_SNAPSHOT
        self._sort = SortState()
        self._listeners: list[Listener] = []
        self._loaded = False
        self._closed = False

    # Read access

    @property
    def entries(self) -> list[WatchEntry]:
        """Entries in insertion order."""
        return list(self._entries)

    @property
    def groups(self) -> list[Group]:
        return list(self._groups)

    @property
    def snapshot(self) -> QuoteSnapshot:
        """Current immutable code -> Quote mapping."""
        return self._quotes

    @property
    def sort_state(self) -> SortState:
        return SortState(
            sort_type=self._sort.sort_type,
            is_manual_sort=self._sort.is_manual_sort,
            selected_group_id=self._sort.selected_group_id,
        )

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    def codes(self) -> list[str]:
        return [entry.code for entry in self._entries]

    def get_entry(self, code: str) -> Optional[WatchEntry]:
        code = normalize_code(code)
        for entry in self._entries:
            if entry.code == code:
                return entry
        return None

    def ordered(self) -> list[WatchEntry]:
        """Entries in display order for the current sort state."""
        return order_entries(
            self._entries,
            self._quotes,
            sort_type=self._sort.sort_type,
            is_manual_sort=self._sort.is_manual_sort,
            selected_group_id=self._sort.selected_group_id,
        )

    # Subscriptions

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Watchlist listener failed on {event}")

    # Loading

    def load(self, force: bool = False) -> None:
        """
        Replace entries, groups and sort state from the repository.

        Repeated calls are no-ops unless `force` is set.
        """
        if self._loaded and not force:
            return
        if self.repository is not None:
            self._entries = self.repository.load_entries()
            self._groups = self.repository.load_groups()
            self._sort = self.repository.load_sort_state()
            self._densify_ranks()
        self._loaded = True
        logger.info(f"Loaded watchlist with {len(self._entries)} entries")
        self._emit(EVENT_ENTRIES)

    # Entries

    def add_entry(
        self,
        code: str,
        name: str = "",
        group_ids: Iterable[str] = (),
    ) -> WatchEntry:
        """Add a code; an already watched code is returned unchanged."""
        code = normalize_code(code)
        if not code:
            raise ValueError("Instrument code cannot be empty")
        existing = self.get_entry(code)
        if existing is not None:
            return existing

        entry = WatchEntry(
            code=code,
            name=name,
            group_ids=self._known_groups(group_ids),
            manual_rank=len(self._entries),
        )
        self._entries.append(entry)
        self._save_entries()
        self._emit(EVENT_ENTRIES)
        return entry

    def remove_entry(self, code: str) -> bool:
        """
        Remove a code from the watchlist.

        Its cached quote is kept until collect_garbage drops it.
        """
        entry = self.get_entry(code)
        if entry is None:
            return False
        self._entries.remove(entry)
        self._densify_ranks()
        self._save_entries()
        self._emit(EVENT_ENTRIES)
        return True

    def set_entry_groups(self, code: str, group_ids: Iterable[str]) -> None:
        entry = self.get_entry(code)
        if entry is None:
            raise KeyError(f"Not in watchlist: {code}")
        entry.group_ids = self._known_groups(group_ids)
        self._save_entries()
        self._emit(EVENT_ENTRIES)

    # Quotes

    def update_quotes(self, quotes: Iterable[Quote]) -> bool:
        """
        Merge quotes into the snapshot, last writer wins per code.

        Returns:
            False if the store was closed and the quotes were discarded
        """
        if self._closed:
            logger.debug("Discarding quotes received after close")
            return False
        merged = dict(self._quotes)
        for quote in quotes:
            merged[quote.code] = quote
        self._quotes = MappingProxyType(merged)
        self._emit(EVENT_QUOTES)
        return True

    def collect_garbage(self, retain: Iterable[str] = ()) -> int:
        """
        Drop cached quotes for codes neither watched nor in `retain`.

        Returns:
            Number of quotes dropped
        """
        keep = set(self.codes()) | {normalize_code(code) for code in retain}
        remaining = {code: quote for code, quote in self._quotes.items() if code in keep}
        dropped = len(self._quotes) - len(remaining)
        if dropped:
            self._quotes = MappingProxyType(remaining)
            self._emit(EVENT_QUOTES)
        return dropped

    # Sorting

    def set_sort_type(self, sort_type: SortType) -> None:
        """
        Set the automatic sort type.

        Choosing rise or fall leaves manual mode; default keeps it.
        """
        sort_type = SortType(sort_type)
        self._sort.sort_type = sort_type
        if sort_type != SortType.DEFAULT:
            self._sort.is_manual_sort = False
        self._save_sort()
        self._emit(EVENT_SORT)

    def exit_manual_sort(self) -> None:
        if not self._sort.is_manual_sort:
            return
        self._sort.is_manual_sort = False
        self._save_sort()
        self._emit(EVENT_SORT)

    def select_group(self, group_id: Optional[str]) -> None:
        """Filter ordering to a group; None selects all entries."""
        if group_id is not None and self._find_group(group_id) is None:
            raise KeyError(f"Unknown group: {group_id}")
        self._sort.selected_group_id = group_id
        self._save_sort()
        self._emit(EVENT_SORT)

    def reorder(self, codes: Iterable[str]) -> None:
        """
        Apply a manual order, e.g. the result of a drag.

        Codes not listed keep their relative manual order after the
        listed ones.
        """
        listed = []
        for code in codes:
            entry = self.get_entry(code)
            if entry is not None and entry not in listed:
                listed.append(entry)
        rest = [
            entry
            for entry in sorted(self._entries, key=lambda e: e.manual_rank)
            if entry not in listed
        ]
        self._apply_manual_order(listed + rest)

    def move_up(self, code: str) -> bool:
        return self._move(code, lambda index, size: index - 1)

    def move_down(self, code: str) -> bool:
        return self._move(code, lambda index, size: index + 1)

    def move_to_top(self, code: str) -> bool:
        return self._move(code, lambda index, size: 0)

    def move_to_bottom(self, code: str) -> bool:
        return self._move(code, lambda index, size: size - 1)

    def _move(self, code: str, target: Callable[[int, int], int]) -> bool:
        # Moves start from what the user currently sees across all groups.
        current = order_entries(
            self._entries,
            self._quotes,
            sort_type=self._sort.sort_type,
            is_manual_sort=self._sort.is_manual_sort,
        )
        entry = self.get_entry(code)
        if entry is None:
            return False
        index = current.index(entry)
        new_index = target(index, len(current))
        if new_index < 0 or new_index >= len(current) or new_index == index:
            return False
        current.pop(index)
        current.insert(new_index, entry)
        self._apply_manual_order(current)
        return True

    def _apply_manual_order(self, ordered: list[WatchEntry]) -> None:
        for rank, entry in enumerate(ordered):
            entry.manual_rank = rank
        self._sort.is_manual_sort = True
        self._save_entries()
        self._save_sort()
        self._emit(EVENT_SORT)

    def _densify_ranks(self) -> None:
        ranked = sorted(self._entries, key=lambda e: e.manual_rank)
        for rank, entry in enumerate(ranked):
            entry.manual_rank = rank

    # Groups

    def add_group(self, name: str, color: str = DEFAULT_GROUP_COLOR) -> Group:
        validate_group_name(name)
        if len(self._groups) >= MAX_GROUP_COUNT:
            raise GroupValidationError(f"At most {MAX_GROUP_COUNT} groups allowed")
        if any(group.name == name for group in self._groups):
            raise GroupValidationError(f"Group already exists: {name}")
        group = Group(name=name, color=color, order=len(self._groups))
        self._groups.append(group)
        self._save_groups()
        self._emit(EVENT_GROUPS)
        return group

    def rename_group(self, group_id: str, name: str) -> None:
        validate_group_name(name)
        group = self._find_group(group_id)
        if group is None:
            raise KeyError(f"Unknown group: {group_id}")
        group.name = name
        self._save_groups()
        self._emit(EVENT_GROUPS)

    def remove_group(self, group_id: str) -> bool:
        """Delete a group and detach it from every entry."""
        group = self._find_group(group_id)
        if group is None:
            return False
        self._groups.remove(group)
        for order, remaining in enumerate(self._groups):
            remaining.order = order
        for entry in self._entries:
            entry.group_ids.discard(group_id)
        if self._sort.selected_group_id == group_id:
            self._sort.selected_group_id = None
            self._save_sort()
        self._save_groups()
        self._save_entries()
        self._emit(EVENT_GROUPS)
        return True

    def _find_group(self, group_id: str) -> Optional[Group]:
        for group in self._groups:
            if group.id == group_id:
                return group
        return None

    def _known_groups(self, group_ids: Iterable[str]) -> set[str]:
        ids = set(group_ids)
        unknown = [group_id for group_id in ids if self._find_group(group_id) is None]
        if unknown:
            raise KeyError(f"Unknown groups: {', '.join(sorted(unknown))}")
        return ids

    # Teardown

    def close(self) -> None:
        """Stop accepting quote updates; late fetch results are dropped."""
        self._closed = True

    # Persistence hooks

    def _save_entries(self) -> None:
        self._persist("entries", lambda repo: repo.save_entries(self._entries))

    def _save_groups(self) -> None:
        self._persist("groups", lambda repo: repo.save_groups(self._groups))

    def _save_sort(self) -> None:
        self._persist("sort state", lambda repo: repo.save_sort_state(self._sort))

    def _persist(self, what: str, save: Callable[["WatchlistRepository"], None]) -> None:
        if self.repository is None:
            return
        try:
            save(self.repository)
        except Exception as e:
            logger.error(f"Failed to save watchlist {what}: {e}")
