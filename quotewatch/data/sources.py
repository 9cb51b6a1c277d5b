"""
Quote sources: Yahoo Finance and Sina real-time quotes.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import requests
import yfinance as yf

from quotewatch.errors import QuoteFetchError
from .quotes import Quote

logger = logging.getLogger(__name__)


class QuoteSource(ABC):
    """Fetches current quotes for a batch of instrument codes."""

    async def fetch_quotes(self, codes: list[str]) -> list[Quote]:
        """
        Fetch quotes without blocking the event loop.

        Args:
            codes: Instrument codes to fetch

        Returns:
            Quotes for the codes that could be fetched; may be fewer than
            requested

        Raises:
            QuoteFetchError: If no quote could be fetched at all
        """
        if not codes:
            return []
        return await asyncio.to_thread(self.fetch_quotes_sync, list(codes))

    @abstractmethod
    def fetch_quotes_sync(self, codes: list[str]) -> list[Quote]:
        """Blocking fetch used by fetch_quotes."""
        pass


class YahooQuoteSource(QuoteSource):
    """Fetches quotes from Yahoo Finance one ticker at a time."""

    def get_quote(self, code: str) -> Quote:
        """
        Fetch a single quote.

        Raises:
            ValueError: If symbol is invalid or data unavailable
        """
        info = yf.Ticker(code).info

        if not info or "regularMarketPrice" not in info and "previousClose" not in info:
            raise ValueError(f"Invalid symbol or no data available: {code}")

        # Use regularMarketPrice if available, otherwise fall back to previousClose
        price = info.get("regularMarketPrice")
        if price is None:
            price = info.get("previousClose")
        if price is None:
            raise ValueError(f"Invalid symbol or no data available: {code}")

        volume = info.get("volume") or 0
        return Quote.from_prices(
            code=code,
            name=info.get("shortName") or code,
            price=float(price),
            prev_close=float(info.get("previousClose", price)),
            volume=int(volume),
            amount=float(volume) * float(price),
            open_price=float(info.get("open", price)),
            high=float(info.get("dayHigh", price)),
            low=float(info.get("dayLow", price)),
        )

    def fetch_quotes_sync(self, codes: list[str]) -> list[Quote]:
        quotes = []
        for code in codes:
            try:
                quotes.append(self.get_quote(code))
            except Exception as e:
                logger.warning(f"Quote unavailable for {code}: {e}")

        if codes and not quotes:
            raise QuoteFetchError(f"No quotes returned for {len(codes)} codes")
        return quotes


class SinaQuoteSource(QuoteSource):
    """Fetches Shanghai/Shenzhen quotes from the Sina list endpoint."""

    BASE_URL = "https://hq.sinajs.cn"
    REFERER = "https://finance.sina.com.cn"
    BATCH_SIZE = 100
    LINE_PATTERN = re.compile(r'var hq_str_(\w+)="([^"]*)"')

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    @staticmethod
    def to_sina_symbol(code: str) -> Optional[str]:
        """Convert SH600000 / SZ000001 to sh600000 / sz000001."""
        code = code.upper()
        if code.startswith(("SH", "SZ")) and code[2:].isdigit():
            return code.lower()
        return None

    def fetch_quotes_sync(self, codes: list[str]) -> list[Quote]:
        by_symbol = {}
        for code in codes:
            symbol = self.to_sina_symbol(code)
            if symbol is None:
                logger.warning(f"Unsupported code for Sina quotes: {code}")
                continue
            by_symbol[symbol] = code

        symbols = sorted(by_symbol)
        quotes = []
        errors = []
        for start in range(0, len(symbols), self.BATCH_SIZE):
            batch = symbols[start:start + self.BATCH_SIZE]
            try:
                text = self._request(batch)
            except requests.RequestException as e:
                logger.warning(f"Sina request failed for {len(batch)} codes: {e}")
                errors.append(e)
                continue
            quotes.extend(self.parse_response(text, by_symbol))

        if codes and not quotes:
            raise QuoteFetchError(
                f"No quotes returned for {len(codes)} codes"
                + (f": {errors[-1]}" if errors else "")
            )
        return quotes

    def _request(self, symbols: list[str]) -> str:
        """Request one batch of symbols."""
        response = requests.get(
            f"{self.BASE_URL}/list={','.join(symbols)}",
            headers={"Referer": self.REFERER},
            timeout=self.timeout,
        )
        response.raise_for_status()
        response.encoding = "gbk"
        return response.text

    def parse_response(self, text: str, by_symbol: dict[str, str]) -> list[Quote]:
        """
        Parse a Sina list response.

        Fields: name, open, prev_close, price, high, low, bid, ask,
        volume, amount, ... Lines with fewer than 32 fields are empty
        placeholders for unknown codes and are skipped.
        """
        quotes = []
        now = datetime.now().astimezone()
        for match in self.LINE_PATTERN.finditer(text):
            symbol, payload = match.group(1), match.group(2)
            code = by_symbol.get(symbol)
            fields = payload.split(",")
            if code is None or len(fields) < 32:
                continue
            try:
                quotes.append(
                    Quote.from_prices(
                        code=code,
                        name=fields[0],
                        price=float(fields[3] or 0),
                        prev_close=float(fields[2] or 0),
                        open_price=float(fields[1] or 0),
                        high=float(fields[4] or 0),
                        low=float(fields[5] or 0),
                        volume=int(float(fields[8] or 0)),
                        amount=float(fields[9] or 0),
                        timestamp=now,
                    )
                )
            except ValueError:
                logger.warning(f"Malformed Sina quote for {code}")
        return quotes


def create_quote_source(provider: str, timeout: float = 10.0) -> QuoteSource:
    """
    Create a quote source by provider name.

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "yahoo_finance":
        return YahooQuoteSource()
    elif provider == "sina":
        return SinaQuoteSource(timeout=timeout)
    else:
        raise ValueError(f"Unknown quote provider: {provider}")
