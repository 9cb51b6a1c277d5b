"""
CLI commands for managing the watchlist, groups and alerts.
"""

import argparse
import asyncio
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from quotewatch.data.sources import QuoteSource, create_quote_source
from quotewatch.database.connection import Database
from quotewatch.database.repository import AlertRepository, WatchlistRepository
from quotewatch.errors import AlertValidationError, QuoteWatchError
from quotewatch.rules.store import AlertStore
from quotewatch.rules.types import (
    AlertCondition,
    AlertRule,
    AlertType,
    NotificationChannels,
    TimePeriod,
)
from quotewatch.watchlist.store import WatchlistStore


def open_stores(db: Database) -> tuple[WatchlistStore, AlertStore]:
    """Create and load both stores on a database."""
    watchlist = WatchlistStore(WatchlistRepository(db))
    alerts = AlertStore(AlertRepository(db))
    watchlist.load()
    alerts.load()
    return watchlist, alerts


def add_to_watchlist(
    watchlist: WatchlistStore,
    codes: list[str],
    group_id: Optional[str] = None,
) -> dict:
    """Add codes to the watchlist."""
    added = []
    existing = []
    for code in codes:
        if watchlist.get_entry(code):
            existing.append(code.upper())
            continue
        entry = watchlist.add_entry(code, group_ids=[group_id] if group_id else [])
        added.append(entry.code)
    return {"added": added, "existing": existing}


def resolve_base_price(source: QuoteSource, code: str) -> float:
    """Use the previous close of a freshly fetched quote as base price."""
    quotes = asyncio.run(source.fetch_quotes([code.upper()]))
    if not quotes:
        raise QuoteWatchError(f"No quote available for {code}")
    return quotes[0].prev_close


def add_alert(
    watchlist: WatchlistStore,
    alerts: AlertStore,
    code: str,
    alert_type: str,
    condition: str,
    target: float,
    base_price: Optional[float],
    period: str = "day",
    tray: bool = True,
    desktop: bool = False,
    name: str = "",
    source: Optional[QuoteSource] = None,
) -> AlertRule:
    """Create an alert, fetching a base price for percent alerts if needed."""
    entry = watchlist.get_entry(code)
    if entry is None:
        raise AlertValidationError(f"Alerts can only be created for watched codes: {code}")
    if base_price is None:
        if alert_type == AlertType.PERCENT.value and source is not None:
            base_price = resolve_base_price(source, code)
        else:
            base_price = 0.0
    return alerts.add(
        code=code,
        name=name or entry.name,
        type=AlertType(alert_type),
        condition=AlertCondition(condition),
        target_value=target,
        base_price=base_price,
        time_period=TimePeriod(period),
        notifications=NotificationChannels(tray=tray, desktop=desktop),
    )


def format_alert(alert: AlertRule) -> str:
    state = "fired" if alert.triggered else "armed"
    if not alert.enabled:
        state = "disabled"
    channels = ",".join(channel.value for channel in alert.notifications.enabled())
    target = f"{alert.target_value:.2f}"
    if alert.type == AlertType.PERCENT:
        target = f"{alert.target_value:+.2f}% of {alert.base_price:.2f}"
    return (
        f"{alert.id}: {alert.code} {alert.type.value} {alert.condition.value} "
        f"{target} [{alert.time_period.value}] {state} via {channels}"
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="quotewatch admin CLI")
    parser.add_argument("--db", default="data/quotewatch.db", help="Database path")
    parser.add_argument(
        "--provider",
        default="yahoo_finance",
        choices=["yahoo_finance", "sina"],
        help="Quote provider used to look up base prices",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Watchlist commands
    watchlist_parser = subparsers.add_parser("watchlist", help="Watchlist management")
    watchlist_subparsers = watchlist_parser.add_subparsers(dest="action")

    add_watchlist_parser = watchlist_subparsers.add_parser("add", help="Add codes")
    add_watchlist_parser.add_argument("--codes", required=True, help="Comma-separated codes")
    add_watchlist_parser.add_argument("--group", help="Group ID")

    remove_watchlist_parser = watchlist_subparsers.add_parser("remove", help="Remove code")
    remove_watchlist_parser.add_argument("code")

    show_watchlist_parser = watchlist_subparsers.add_parser("show", help="Show watchlist")
    show_watchlist_parser.add_argument("--group", help="Only show this group")

    # Group commands
    groups_parser = subparsers.add_parser("groups", help="Group management")
    groups_subparsers = groups_parser.add_subparsers(dest="action")

    add_group_parser = groups_subparsers.add_parser("add", help="Add group")
    add_group_parser.add_argument("name")
    add_group_parser.add_argument("--color", default="#1890ff")

    groups_subparsers.add_parser("list", help="List groups")

    remove_group_parser = groups_subparsers.add_parser("remove", help="Remove group")
    remove_group_parser.add_argument("group_id")

    assign_group_parser = groups_subparsers.add_parser("assign", help="Set groups of a code")
    assign_group_parser.add_argument("code")
    assign_group_parser.add_argument("--groups", default="", help="Comma-separated group IDs")

    # Sort commands
    sort_parser = subparsers.add_parser("sort", help="Ordering")
    sort_subparsers = sort_parser.add_subparsers(dest="action")

    set_sort_parser = sort_subparsers.add_parser("set", help="Set sort type")
    set_sort_parser.add_argument("type", choices=["default", "rise", "fall"])

    move_parser = sort_subparsers.add_parser("move", help="Move a code manually")
    move_parser.add_argument("code")
    move_parser.add_argument("direction", choices=["up", "down", "top", "bottom"])

    sort_subparsers.add_parser("manual-off", help="Leave manual ordering")

    # Alert commands
    alerts_parser = subparsers.add_parser("alerts", help="Alert management")
    alerts_subparsers = alerts_parser.add_subparsers(dest="action")

    add_alert_parser = alerts_subparsers.add_parser("add", help="Add alert")
    add_alert_parser.add_argument("--code", required=True)
    add_alert_parser.add_argument("--name", default="")
    add_alert_parser.add_argument("--type", required=True, choices=["price", "percent"])
    add_alert_parser.add_argument("--condition", required=True, choices=["above", "below"])
    add_alert_parser.add_argument("--target", required=True, type=float)
    add_alert_parser.add_argument("--base-price", type=float, help="Defaults to previous close")
    add_alert_parser.add_argument(
        "--period", default="day", choices=["day", "week", "month", "permanent"]
    )
    add_alert_parser.add_argument("--no-tray", action="store_true")
    add_alert_parser.add_argument("--desktop", action="store_true")

    list_alerts_parser = alerts_subparsers.add_parser("list", help="List alerts")
    list_alerts_parser.add_argument("--code")

    edit_alert_parser = alerts_subparsers.add_parser("edit", help="Edit alert")
    edit_alert_parser.add_argument("alert_id")
    edit_alert_parser.add_argument("--target", type=float)
    edit_alert_parser.add_argument("--condition", choices=["above", "below"])
    edit_alert_parser.add_argument("--base-price", type=float)

    for action in ("remove", "reset", "toggle"):
        action_parser = alerts_subparsers.add_parser(action, help=f"{action.title()} alert")
        action_parser.add_argument("alert_id")

    args = parser.parse_args()

    db = Database(args.db)
    db.initialize()
    watchlist, alerts = open_stores(db)

    try:
        if args.command == "watchlist":
            if args.action == "add":
                codes = [c.strip() for c in args.codes.split(",") if c.strip()]
                result = add_to_watchlist(watchlist, codes, group_id=args.group)
                print(f"Added: {result['added']}")
                if result["existing"]:
                    print(f"Already watched: {result['existing']}")
            elif args.action == "remove":
                removed = watchlist.remove_entry(args.code)
                print(f"Removed {args.code}" if removed else f"Not watched: {args.code}")
            elif args.action == "show":
                if args.group:
                    watchlist.select_group(args.group)
                for entry in watchlist.ordered():
                    groups = ",".join(sorted(entry.group_ids)) or "-"
                    print(f"{entry.manual_rank:>3} {entry.code} {entry.name} [{groups}]")

        elif args.command == "groups":
            if args.action == "add":
                group = watchlist.add_group(args.name, color=args.color)
                print(f"Created group with ID: {group.id}")
            elif args.action == "list":
                for group in watchlist.groups:
                    print(f"{group.id}: {group.name} ({group.color})")
            elif args.action == "remove":
                watchlist.remove_group(args.group_id)
            elif args.action == "assign":
                group_ids = [g.strip() for g in args.groups.split(",") if g.strip()]
                watchlist.set_entry_groups(args.code, group_ids)

        elif args.command == "sort":
            if args.action == "set":
                watchlist.set_sort_type(args.type)
            elif args.action == "move":
                move = {
                    "up": watchlist.move_up,
                    "down": watchlist.move_down,
                    "top": watchlist.move_to_top,
                    "bottom": watchlist.move_to_bottom,
                }[args.direction]
                if not move(args.code):
                    print(f"Cannot move {args.code} {args.direction}")
            elif args.action == "manual-off":
                watchlist.exit_manual_sort()

        elif args.command == "alerts":
            if args.action == "add":
                alert = add_alert(
                    watchlist,
                    alerts,
                    code=args.code,
                    alert_type=args.type,
                    condition=args.condition,
                    target=args.target,
                    base_price=args.base_price,
                    period=args.period,
                    tray=not args.no_tray,
                    desktop=args.desktop,
                    name=args.name,
                    source=create_quote_source(args.provider),
                )
                print(f"Created alert with ID: {alert.id}")
            elif args.action == "list":
                rules = alerts.by_code(args.code) if args.code else alerts.list_all()
                for alert in rules:
                    print(format_alert(alert))
            elif args.action == "edit":
                changes = {}
                if args.target is not None:
                    changes["target_value"] = args.target
                if args.condition:
                    changes["condition"] = AlertCondition(args.condition)
                if args.base_price is not None:
                    changes["base_price"] = args.base_price
                print(format_alert(alerts.update(args.alert_id, **changes)))
            elif args.action == "remove":
                alerts.remove(args.alert_id)
            elif args.action == "reset":
                alerts.reset(args.alert_id)
            elif args.action == "toggle":
                alert = alerts.toggle(args.alert_id)
                print(f"{alert.id} {'enabled' if alert.enabled else 'disabled'}")

    except (QuoteWatchError, KeyError) as e:
        print(f"Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
