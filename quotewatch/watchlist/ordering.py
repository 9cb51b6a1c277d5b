"""
Display ordering of the watchlist.
"""

from typing import Iterable, Optional

from quotewatch.data.quotes import QuoteSnapshot
from .models import SortType, WatchEntry


def _compare(a: WatchEntry, b: WatchEntry, quotes: QuoteSnapshot, sort_type: SortType) -> float:
    """Comparator over change percent; a missing quote compares equal."""
    quote_a = quotes.get(a.code)
    quote_b = quotes.get(b.code)
    if quote_a is None or quote_b is None:
        return 0
    if sort_type == SortType.RISE:
        return quote_b.change_percent - quote_a.change_percent
    return quote_a.change_percent - quote_b.change_percent


def _stable_sort(entries: list[WatchEntry], quotes: QuoteSnapshot, sort_type: SortType) -> list[WatchEntry]:
    # Insertion sort: an element only moves ahead of neighbours it strictly
    # precedes, so entries without quotes keep their place relative to all.
    result: list[WatchEntry] = []
    for entry in entries:
        position = len(result)
        while position > 0 and _compare(entry, result[position - 1], quotes, sort_type) < 0:
            position -= 1
        result.insert(position, entry)
    return result


def order_entries(
    entries: Iterable[WatchEntry],
    quotes: QuoteSnapshot,
    sort_type: SortType = SortType.DEFAULT,
    is_manual_sort: bool = False,
    selected_group_id: Optional[str] = None,
) -> list[WatchEntry]:
    """
    Derive the displayed order of the watchlist.

    Args:
        entries: Watch entries in stored (insertion) order
        quotes: Current quote snapshot
        sort_type: Automatic ordering, ignored in manual mode
        is_manual_sort: Order by manual_rank
        selected_group_id: Only keep entries in this group; None keeps all

    Returns:
        New list of entries in display order
    """
    filtered = [
        entry
        for entry in entries
        if selected_group_id is None or selected_group_id in entry.group_ids
    ]

    if is_manual_sort:
        return sorted(filtered, key=lambda entry: entry.manual_rank)

    if sort_type == SortType.DEFAULT:
        return filtered

    return _stable_sort(filtered, quotes, SortType(sort_type))
