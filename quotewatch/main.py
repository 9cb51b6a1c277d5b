"""
Main application entry point.
"""

import argparse
import asyncio
import logging
import signal
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

from quotewatch.app import QuoteWatchApp
from quotewatch.config import AppConfig, load_config
from quotewatch.data.sources import create_quote_source
from quotewatch.database.connection import Database
from quotewatch.notifiers.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def build_app(config: AppConfig, db: Database) -> QuoteWatchApp:
    """Create the application from configuration."""
    notifications = config.notifications
    dispatcher = NotificationDispatcher.from_config({
        "tray": vars(notifications.tray),
        "desktop": vars(notifications.desktop),
    })
    return QuoteWatchApp(
        source=create_quote_source(
            config.data_source.provider,
            timeout=config.data_source.request_timeout,
        ),
        dispatcher=dispatcher,
        timezone=ZoneInfo(config.schedule.timezone),
        db=db,
        poll_interval=config.schedule.poll_interval_seconds,
        immediate=config.schedule.immediate,
        polling_enabled=config.schedule.enabled,
        rearm_on_cross=config.alerts.rearm_on_cross,
    )


async def _serve(app: QuoteWatchApp) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.stop)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass
    await app.run()


async def _check_once(app: QuoteWatchApp) -> None:
    app.load()
    await app.refresh_quotes()
    for entry in app.display_order:
        quote = app.watchlist.snapshot.get(entry.code)
        if quote:
            logger.info(f"{entry.code} {quote.price:.2f} ({quote.change_percent:+.2f}%)")
        else:
            logger.info(f"{entry.code} no quote")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="quotewatch - quote polling and price alerts")
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to config file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Refresh quotes and evaluate alerts once, then exit",
    )

    args = parser.parse_args()

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else getattr(logging, config.advanced.log_level)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = Database(config.database.path)
    db.initialize()

    app = build_app(config, db)

    try:
        if args.once:
            asyncio.run(_check_once(app))
        else:
            asyncio.run(_serve(app))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        db.close()


if __name__ == "__main__":
    main()
