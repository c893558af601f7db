#!/usr/bin/env python3
"""
Import an order export (xlsx or csv) into the sharded order store.

Rows are parsed, validated and upserted into their client's shard table;
rows that cannot be routed or fail validation land in the overflow store.

Usage:
    python3 scripts/import_orders.py --file <path> [options]

Examples:
    # Import into a local SQLite database
    python3 scripts/import_orders.py --file orders.xlsx --db-url sqlite:///orders.db

    # Probe the file (row count, columns, sample) without writing
    python3 scripts/import_orders.py --file orders.csv --probe-only
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("ORDER_DB_URL", "sqlite:///orders.db")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import an order spreadsheet: parse -> validate -> route -> upsert.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--file",
        required=True,
        type=Path,
        help="Path to the order export (.xlsx, .xlsm or .csv).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file (default: packaged defaults).",
    )
    parser.add_argument(
        "--probe-only",
        action="store_true",
        help="Print row count, columns and sample rows, then exit. No DB writes.",
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

    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    from order_config import get_active_config
    from order_ingestion.adapters import adapter_for, format_for_filename
    from order_ingestion.services import OrderImportService
    from order_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from order_kernel.domain.dtos import SYSTEM_ACTOR_ID
    from order_kernel.exceptions import OrderSystemError
    from order_kernel.sharding import ShardRouter

    actor_raw = args.actor_id or os.environ.get("ORDER_ACTOR_ID")
    actor_id = UUID(actor_raw) if actor_raw else SYSTEM_ACTOR_ID

    try:
        config = get_active_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    content = source_path.read_bytes()

    if args.probe_only:
        try:
            adapter = adapter_for(format_for_filename(source_path.name))
            shape = adapter.probe(content, {})
        except OrderSystemError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(f"Rows: {shape.row_count}")
        print(f"Columns: {list(shape.columns)}")
        print("Sample (first 3):")
        for i, row in enumerate(shape.sample_rows[:3], 1):
            print(f"  {i}: {row}")
        return 0

    try:
        init_engine_from_url(args.db_url)
        create_tables(config.sharding.default_shard_count)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    def _progress(p) -> None:
        print(f"  [{p.percent:3d}%] {p.step.value}: {p.message}")

    try:
        with session_scope() as session:
            router = ShardRouter.from_session(
                session, config.sharding.default_shard_count, actor_id
            )
            create_tables(router.shard_count)
            svc = OrderImportService(
                session, router, limits=config.ingest, settlement=config.settlement
            )
            print(f"Importing {source_path}...")
            summary = svc.import_file(content, source_path.name, actor_id, _progress)
    except OrderSystemError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    result = summary.ingest
    print(f"  Rows: {summary.total_rows}, parsed: {summary.parsed}, row errors: {summary.row_error_count}")
    print(f"  Invalid (stored as abnormal): {summary.invalid}")
    print(
        f"  Written: {result.inserted_or_updated}, abnormal: {result.abnormal_count}, "
        f"failed: {result.failed_count} (batch size {result.batch_size})"
    )
    if summary.sku_mappings_created:
        print(f"  New SKU->SPU mappings: {summary.sku_mappings_created}")
    for warning in summary.warnings:
        print(f"  WARNING: {warning}")
    for err in summary.row_errors[:10]:
        print(f"  Row {err.row_number}: {err.message}")
    for err in result.errors[:10]:
        print(f"  {err.external_order_id}/{err.sku or '-'}: {err.message}")
    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
