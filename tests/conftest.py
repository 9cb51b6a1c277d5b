"""
Pytest configuration and shared fixtures.
"""

import dataclasses
from zoneinfo import ZoneInfo

import pytest

from quotewatch.data.quotes import Quote
from quotewatch.database.connection import Database


@pytest.fixture
def make_quote():
    """Factory for quotes; the timestamp defaults to now."""

    def _make(code, price=100.0, prev_close=100.0, change_percent=None, name=None, timestamp=None):
        quote = Quote.from_prices(
            code=code,
            name=name or f"{code} Corp",
            price=price,
            prev_close=prev_close,
            volume=1_000_000,
            amount=price * 1_000_000,
            timestamp=timestamp,
        )
        if change_percent is not None:
            quote = dataclasses.replace(quote, change_percent=change_percent)
        return quote

    return _make


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def tz():
    return ZoneInfo("Asia/Shanghai")


@pytest.fixture
def sample_stock_info():
    """Sample Yahoo Finance stock info response."""
    return {
        "regularMarketPrice": 175.50,
        "previousClose": 173.25,
        "open": 174.00,
        "dayHigh": 176.00,
        "dayLow": 173.50,
        "volume": 50_000_000,
        "shortName": "Apple Inc.",
    }


@pytest.fixture
def sample_discord_webhook_url():
    """Sample Discord webhook URL for testing."""
    return "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"
