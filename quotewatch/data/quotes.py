"""
Quote model.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class Quote:
    """Latest market data point for one instrument."""

    code: str
    name: str
    price: float
    prev_close: float
    change: float
    change_percent: float
    volume: int
    amount: float
    timestamp: datetime
    open_price: float = 0.0
    high: float = 0.0
    low: float = 0.0

    @classmethod
    def from_prices(
        cls,
        code: str,
        name: str,
        price: float,
        prev_close: float,
        volume: int = 0,
        amount: float = 0.0,
        open_price: float = 0.0,
        high: float = 0.0,
        low: float = 0.0,
        timestamp: Optional[datetime] = None,
    ) -> "Quote":
        """
        Build a quote, deriving change and change percent from prev_close.

        A zero previous close yields a change percent of 0. The timestamp
        defaults to the current local time, timezone aware.
        """
        change = price - prev_close
        change_percent = (change / prev_close) * 100 if prev_close else 0.0
        return cls(
            code=code,
            name=name,
            price=price,
            prev_close=prev_close,
            change=change,
            change_percent=change_percent,
            volume=volume,
            amount=amount,
            timestamp=timestamp or datetime.now().astimezone(),
            open_price=open_price,
            high=high,
            low=low,
        )


# Read-only code -> Quote mapping handed out by the watchlist store.
QuoteSnapshot = Mapping[str, Quote]

EMPTY_SNAPSHOT: QuoteSnapshot = MappingProxyType({})
