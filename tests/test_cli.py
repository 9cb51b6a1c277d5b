"""
Admin CLI helper tests.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from quotewatch.cli import add_alert, add_to_watchlist, format_alert, open_stores
from quotewatch.errors import AlertValidationError, QuoteWatchError
from quotewatch.rules.types import AlertType


@pytest.fixture
def stores(db):
    return open_stores(db)


class TestWatchlistCommands:
    """Test watchlist helpers."""

    def test_add_reports_existing(self, stores):
        watchlist, _ = stores
        first = add_to_watchlist(watchlist, ["AAPL", "msft"])
        second = add_to_watchlist(watchlist, ["aapl", "NVDA"])
        assert first == {"added": ["AAPL", "MSFT"], "existing": []}
        assert second == {"added": ["NVDA"], "existing": ["AAPL"]}

    def test_add_into_group(self, stores):
        watchlist, _ = stores
        group = watchlist.add_group("Tech")
        add_to_watchlist(watchlist, ["AAPL"], group_id=group.id)
        assert watchlist.get_entry("AAPL").group_ids == {group.id}


class TestAlertCommands:
    """Test alert helpers."""

    def test_unwatched_code_rejected(self, stores):
        """Should only create alerts for watched codes."""
        watchlist, alerts = stores
        with pytest.raises(AlertValidationError):
            add_alert(watchlist, alerts, "AAPL", "price", "above", 200.0, None)

    def test_percent_alert_uses_prev_close(self, stores, make_quote):
        """Should default the base price to the previous close."""
        watchlist, alerts = stores
        watchlist.add_entry("AAPL", name="Apple")
        source = Mock()
        source.fetch_quotes = AsyncMock(return_value=[make_quote("AAPL", price=150, prev_close=148.5)])

        alert = add_alert(watchlist, alerts, "AAPL", "percent", "below", -3.0, None, source=source)

        assert alert.base_price == 148.5
        assert alert.name == "Apple"
        assert alert.type is AlertType.PERCENT
        source.fetch_quotes.assert_awaited_once_with(["AAPL"])

    def test_percent_alert_without_quote(self, stores):
        """Should fail when no base price can be looked up."""
        watchlist, alerts = stores
        watchlist.add_entry("AAPL")
        source = Mock()
        source.fetch_quotes = AsyncMock(return_value=[])
        with pytest.raises(QuoteWatchError):
            add_alert(watchlist, alerts, "AAPL", "percent", "above", 5.0, None, source=source)

    def test_format_alert(self, stores):
        watchlist, alerts = stores
        watchlist.add_entry("AAPL")
        alert = add_alert(
            watchlist, alerts, "AAPL", "percent", "above", 5.0, 100.0, period="week", desktop=True
        )
        text = format_alert(alert)
        assert text.startswith(f"{alert.id}: AAPL percent above +5.00% of 100.00 [week] armed")
        assert text.endswith("via tray,desktop")
