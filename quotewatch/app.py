"""
Application wiring: polling, quote merge, alert evaluation and delivery.
"""

import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Optional

from quotewatch.data.quotes import QuoteSnapshot
from quotewatch.data.sources import QuoteSource
from quotewatch.database.connection import Database
from quotewatch.database.repository import AlertRepository, WatchlistRepository
from quotewatch.errors import QuoteFetchError
from quotewatch.notifiers.base import NotificationResult
from quotewatch.notifiers.dispatcher import NotificationDispatcher
from quotewatch.rules.engine import AlertEngine
from quotewatch.rules.store import AlertStore
from quotewatch.scheduler import PollingScheduler
from quotewatch.watchlist.models import WatchEntry
from quotewatch.watchlist.store import EVENT_ENTRIES, WatchlistStore

logger = logging.getLogger(__name__)


class QuoteWatchApp:
    """Main quotewatch application."""

    def __init__(
        self,
        source: QuoteSource,
        dispatcher: NotificationDispatcher,
        timezone: tzinfo,
        db: Optional[Database] = None,
        poll_interval: float = 10.0,
        immediate: bool = True,
        polling_enabled: bool = True,
        rearm_on_cross: bool = False,
    ):
        """
        Initialize quotewatch app.

        Args:
            source: Quote source used on every tick
            dispatcher: Delivers fired alerts
            timezone: Timezone for alert reset windows
            db: Database for persistence; None keeps state in memory only
            poll_interval: Seconds between the end of one refresh and the next
            immediate: Refresh as soon as polling starts
            polling_enabled: Whether polling is allowed at all
            rearm_on_cross: Re-arm fired alerts when their condition stops holding
        """
        self.source = source
        self.dispatcher = dispatcher
        self.polling_enabled = polling_enabled

        self.watchlist = WatchlistStore(WatchlistRepository(db) if db else None)
        self.alerts = AlertStore(AlertRepository(db) if db else None)
        self.engine = AlertEngine(self.alerts, timezone, rearm_on_cross=rearm_on_cross)
        self.scheduler = PollingScheduler(
            self.refresh_quotes,
            interval=poll_interval,
            immediate=immediate,
            enabled=False,
            name="quotes",
        )

        self.display_order: list[WatchEntry] = []
        self._unsubscribe = self.watchlist.subscribe(self._on_watchlist_change)
        self._stopped: Optional[asyncio.Event] = None

    def load(self) -> None:
        """Load persisted watchlist and alerts."""
        self.watchlist.load()
        self.alerts.load()

    def _on_watchlist_change(self, event: str) -> None:
        self.display_order = self.watchlist.ordered()
        if event == EVENT_ENTRIES:
            # Nothing to poll for an empty watchlist
            self.scheduler.set_enabled(self.polling_enabled and bool(self.watchlist.codes()))

    async def refresh_quotes(self) -> None:
        """One polling tick: fetch, merge, evaluate, deliver."""
        self.watchlist.collect_garbage(retain=self.alerts.codes())
        codes = self.watchlist.codes()
        if not codes:
            return

        try:
            quotes = await self.source.fetch_quotes(codes)
        except QuoteFetchError as e:
            logger.warning(f"Quote refresh skipped: {e}")
            return

        if not self.watchlist.update_quotes(quotes):
            return
        logger.debug(f"Merged {len(quotes)} of {len(codes)} quotes")

        await self.evaluate(self.watchlist.snapshot)

    async def evaluate(
        self,
        snapshot: QuoteSnapshot,
        now: Optional[datetime] = None,
    ) -> list[NotificationResult]:
        """Evaluate alerts against a snapshot and deliver what fired."""
        notifications = self.engine.evaluate(snapshot, now=now)
        if not notifications:
            return []
        return await asyncio.to_thread(self.dispatcher.dispatch_all, notifications)

    async def run(self) -> None:
        """Poll until stop() is called."""
        self.load()
        self._stopped = asyncio.Event()
        self.scheduler.start()
        logger.info(
            f"Polling {len(self.watchlist.codes())} codes every "
            f"{self.scheduler.interval}s"
        )
        await self._stopped.wait()
        await self.shutdown()

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()

    async def shutdown(self) -> None:
        """Stop polling; a fetch still in flight is discarded."""
        self.watchlist.close()
        await self.scheduler.stop()
        self._unsubscribe()
        logger.info("Stopped polling")
