"""
PCP Analytics - Command Line Report

Loads a snapshot of the PCP database and prints the analytics views:
- stock: live and snapshot inventory balances
- lines: availability/performance per line
- downtime: raw vs. bottleneck downtime Paretos
- goals: weekly plan vs. actual
- order: readiness of one order
"""

import argparse
import logging
import sys
from dataclasses import asdict
from datetime import date
from typing import List, Optional

import pandas as pd
from dateutil import parser as date_parser

from config import Config
from core.analysis.engine import AnalyticsEngine
from core.analysis.snapshot import SnapshotStore
from core.db.fetchers import fetch_collections
from core.db.pool import close_all_pools
from core.time_windows.filters import get_date_range_summary
from core.time_windows.models import DateRange, today_in_timezone
from utils.config import get_app_config, load_config, validate_config
from utils.formatting import (
    convert_all_dates_to_str,
    efficiency_to_frame,
    format_minutes,
    format_percentage,
    format_quantity,
    goals_to_frame,
    live_balances_to_frame,
    pareto_to_frame,
    readiness_to_frame,
    snapshot_balances_to_frame,
    validate_date_range,
)

logger = logging.getLogger(__name__)


def _parse_day(value: str) -> date:
    try:
        return date_parser.parse(value, dayfirst=False).date()
    except (ValueError, OverflowError):
        raise argparse.ArgumentTypeError(f"Invalid date: {value!r}")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PCP production analytics report")
    parser.add_argument("--env", type=str, default=None, help="Path to .env file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    stock = subparsers.add_parser("stock", help="Inventory balances")
    stock.add_argument("--type", dest="product_type", help="Only snapshot balances of this product type")

    for name, help_text in (("lines", "Line efficiency"), ("downtime", "Downtime breakdown")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--start", type=_parse_day, default=None, help="First day (default: today)")
        sub.add_argument("--end", type=_parse_day, default=None, help="Last day (default: start)")
        sub.add_argument("--shift", type=str, default=None)
        if name == "downtime":
            sub.add_argument("--line", type=str, default=None, help="Line id or name")

    goals = subparsers.add_parser("goals", help="Weekly goals")
    goals.add_argument("--today", type=_parse_day, default=None)

    order = subparsers.add_parser("order", help="Order readiness")
    order.add_argument("order_id", type=str)

    return parser


def _print_table(title: str, df: pd.DataFrame):
    print(f"\n=== {title} ===")
    if df.empty:
        print("(no data)")
    else:
        print(df.to_string(index=False))


def _resolve_range(args, today: date) -> Optional[DateRange]:
    start = args.start or today
    end = args.end or start
    errors, warnings, is_valid = validate_date_range(start, end, today)
    for warning in warnings:
        logger.warning(warning)
    if not is_valid:
        for error in errors:
            logger.error(error)
        return None
    return DateRange(start, end)


def report_stock(engine: AnalyticsEngine, product_type: Optional[str] = None):
    live = engine.get_live_balances()
    _print_table("Live balance (produced - shipped - pending)", live_balances_to_frame(live))
    critical = [balance for balance in live.values() if balance.is_critical]
    print(f"\nCritical products: {len(critical)} of {len(live)}")

    _print_table("Snapshot balance (seeded + scheduled - pending)",
                 snapshot_balances_to_frame(engine.get_snapshot_balances(product_type)))


def report_lines(engine: AnalyticsEngine, date_range: DateRange, shift: Optional[str]):
    overview = engine.get_lines_overview(date_range, shift)
    _print_table(f"Line efficiency {date_range}", efficiency_to_frame(overview))
    for efficiency in overview:
        if efficiency.alert_severity == "CRITICAL":
            logger.warning(
                f"Line {efficiency.line_name}: {format_minutes(efficiency.bottleneck_downtime_minutes)} "
                f"of bottleneck downtime"
            )


def report_downtime(engine: AnalyticsEngine, date_range: DateRange, line_id: Optional[str], shift: Optional[str]):
    breakdown = engine.get_downtime_breakdown(date_range, line_id=line_id, shift=shift)
    summary = get_date_range_summary(date_range, engine.store.snapshot.records)

    print(f"\nRecords in range: {summary['included_records']} of {summary['total_records']} "
          f"({format_percentage(summary['coverage_percentage'])})")
    print(f"Raw downtime: {format_minutes(breakdown.raw_total)} in {breakdown.total_stop_count} stops "
          f"(MTTR {breakdown.mttr:.1f} min)")
    print(f"Bottleneck downtime: {format_minutes(breakdown.bottleneck_total)}")
    print(f"Estimated lost volume: {format_quantity(breakdown.lost_units)} units")

    _print_table("Bottleneck Pareto by equipment", pareto_to_frame(breakdown.pareto))
    _print_table("Bottleneck Pareto by category", pareto_to_frame(breakdown.bottleneck.category_pareto))
    _print_table("Raw downtime by type", pareto_to_frame(breakdown.raw.type_pareto))

    if breakdown.most_critical_type is not None:
        _print_table(f"Equipment behind {breakdown.most_critical_type} stops",
                     pareto_to_frame(breakdown.critical_type_equipment))

    failures = pd.DataFrame([asdict(failure) for failure in breakdown.failures])
    _print_table("Failure log", convert_all_dates_to_str(failures))


def report_goals(engine: AnalyticsEngine, today: Optional[date]):
    _print_table("Weekly goals", goals_to_frame(engine.get_weekly_goal_status(today)))


def report_order(engine: AnalyticsEngine, order_id: str) -> bool:
    readiness = engine.get_order_readiness(order_id)
    if readiness is None:
        print(f"Order {order_id} not found")
        return False
    _print_table(f"Order {order_id} ({readiness.order.customer})", readiness_to_frame(readiness))
    print(f"\nCoverage: {format_percentage(readiness.coverage_percentage)} - "
          f"{'READY' if readiness.is_ready else 'NOT READY'}")
    return readiness.is_ready


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    load_config(args.env)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config_errors = validate_config()
    if config_errors:
        for error in config_errors:
            logger.error(f"Configuration error: {error}")
        return 2

    app_config = get_app_config()
    store = SnapshotStore(fetch_collections)
    engine = AnalyticsEngine(
        store,
        timezone=app_config["timezone"],
        seed_fraction=app_config["snapshot_seed_fraction"],
        fallback_capacity=app_config["fallback_capacity"],
    )

    try:
        snapshot = store.refresh()
        if snapshot.fetched_at is None:
            logger.error("No data could be loaded from the PCP database")
            return 1

        today = today_in_timezone(app_config["timezone"])

        if args.command == "stock":
            report_stock(engine, args.product_type)
        elif args.command in ("lines", "downtime"):
            date_range = _resolve_range(args, today)
            if date_range is None:
                return 2
            if args.command == "lines":
                report_lines(engine, date_range, args.shift)
            else:
                report_downtime(engine, date_range, args.line, args.shift)
        elif args.command == "goals":
            report_goals(engine, args.today)
        elif args.command == "order":
            return 0 if report_order(engine, args.order_id) else 1

        return 0

    finally:
        store.shutdown()
        close_all_pools()


if __name__ == "__main__":
    sys.exit(main())
