#!/usr/bin/env python3
"""
Settlement batch trigger and ledger operations.

Usage:
    python3 scripts/run_settlement.py calculate --start <date> --end <date> [--client <id>]
    python3 scripts/run_settlement.py execute --start <date> --end <date> --client <id>
    python3 scripts/run_settlement.py report --date <date>

Examples:
    # Compute settlement amounts for last week, every client
    python3 scripts/run_settlement.py calculate --start 2024-05-01 --end 2024-05-07

    # Roll client 42's calculated lines into a ledger record
    python3 scripts/run_settlement.py execute --start 2024-05-01 --end 2024-05-07 --client 42

    # Status roll-up for one payment date
    python3 scripts/run_settlement.py report --date 2024-05-03
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("ORDER_DB_URL", "sqlite:///orders.db")


def _iso_date(value: str) -> date:
    return date.fromisoformat(value)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run settlement: calculate amounts, execute ledger records, report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=("calculate", "execute", "report"))
    parser.add_argument("--start", type=_iso_date, default=None, help="First payment date (YYYY-MM-DD).")
    parser.add_argument("--end", type=_iso_date, default=None, help="Last payment date (YYYY-MM-DD).")
    parser.add_argument("--date", type=_iso_date, default=None, help="Payment date for report.")
    parser.add_argument("--client", type=int, default=None, help="Client id (required for execute).")
    parser.add_argument("--notes", default=None, help="Free-text notes stored on the ledger record.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file (default: packaged defaults).",
    )
    parser.add_argument(
        "--actor-id",
        default=None,
        help="Actor UUID for audit (default: ORDER_ACTOR_ID env or the system actor).",
    )
    parser.add_argument(
        "--db-url",
        default=DB_URL,
        help=f"Database URL (default: {DB_URL!r}).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    if args.command in ("calculate", "execute") and (args.start is None or args.end is None):
        print(f"ERROR: {args.command} needs --start and --end", file=sys.stderr)
        return 2
    if args.command == "execute" and args.client is None:
        print("ERROR: execute needs --client", file=sys.stderr)
        return 2
    if args.command == "report" and args.date is None:
        print("ERROR: report needs --date", file=sys.stderr)
        return 2

    # Lazy imports so we fail fast on args first
    from order_config import get_active_config
    from order_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
        session_scope,
    )
    from order_kernel.domain.clock import SystemClock
    from order_kernel.domain.dtos import SYSTEM_ACTOR_ID
    from order_kernel.exceptions import OrderSystemError
    from order_kernel.sharding import ShardRouter
    from order_settlement.domain.types import DateRange
    from order_settlement.services import SettlementLedger, SettlementPipeline

    actor_raw = args.actor_id or os.environ.get("ORDER_ACTOR_ID")
    actor_id = UUID(actor_raw) if actor_raw else SYSTEM_ACTOR_ID

    try:
        config = get_active_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(args.db_url)
        create_tables(config.sharding.default_shard_count)
        with session_scope() as session:
            router = ShardRouter.from_session(
                session, config.sharding.default_shard_count, actor_id
            )
        create_tables(router.shard_count)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    clock = SystemClock()
    factory = get_session_factory()
    pipeline = SettlementPipeline(factory, router, clock, config.settlement)
    ledger = SettlementLedger(factory, router, pipeline, clock, config.settlement)

    try:
        if args.command == "calculate":
            result = pipeline.settle_range(args.start, args.end, args.client, actor_id)
            totals = result.totals
            print(f"Settled {result.date_range.day_count} day(s):")
            print(
                f"  Processed: {totals.processed}, cancelled: {totals.cancelled}, "
                f"calculated: {totals.calculated}, skipped: {totals.skipped}"
            )
            for message in totals.errors[:10]:
                print(f"  {message}")
            for outcome in result.outcomes:
                if not outcome.succeeded:
                    print(f"  FAILED {outcome.settlement_date}: {outcome.error}")
            return 0 if not result.failed_dates else 1

        if args.command == "execute":
            record = ledger.execute(
                DateRange(args.start, args.end), args.client, actor_id, notes=args.notes
            )
            print(f"Settlement {record.settlement_id} recorded:")
            print(f"  Client: {record.client_id}, orders: {record.order_count}, total: {record.total_amount}")
            return 0

        report = ledger.report(args.date)
        print(f"Report for {report.settlement_date}: {report.total_orders} order line(s)")
        for status, summary in sorted(report.by_status.items(), key=lambda kv: kv[0].value):
            print(f"  {status.value:<10} {summary.count:>8}  {summary.amount}")
        print(f"  Settled amount: {report.settled_amount}")
        return 0
    except OrderSystemError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
