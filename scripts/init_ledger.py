#!/usr/bin/env python3
"""
Initialize the dedupe ledger and import the legacy ledger.

Creates the SQLite ledger if needed, imports entries from the legacy
``processed.json`` file (once, without overwriting newer records) and
prints the most recent results.

Usage:
    python scripts/init_ledger.py
    python scripts/init_ledger.py --legacy /path/to/processed.json
    python scripts/init_ledger.py --clear
"""

import argparse
import sqlite3
import sys
from pathlib import Path

from loguru import logger

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.utils.config import get_settings
from domains.voice_memos.store import DedupeStore


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the voice memo dedupe ledger.")
    parser.add_argument(
        "--legacy",
        type=Path,
        default=None,
        help="Legacy JSON ledger to import (default: the configured legacy path).",
    )
    parser.add_argument("--limit", type=int, default=10, help="Recent results to show.")
    parser.add_argument("--clear", action="store_true", help="Delete every record first.")
    return parser.parse_args(argv)


def main(argv=None):
    """Main initialization function."""
    args = parse_args(argv)
    settings = get_settings()

    logger.info(f"Opening ledger at {settings.ledger_path}...")
    try:
        store = DedupeStore(settings.ledger_path, legacy_path=settings.legacy_ledger_path)
    except (sqlite3.Error, OSError) as e:
        logger.error(f"Ledger initialization failed: {e}")
        return 1

    try:
        if args.clear:
            deleted = store.clear_all()
            logger.warning(f"Deleted {deleted} records")

        if args.legacy is not None:
            logger.info(f"Importing legacy ledger {args.legacy}...")
            imported = store.import_legacy(args.legacy)
            logger.info(f"  Imported: {imported}")

        logger.info("\n=== Results ===")
        logger.info(f"  Records: {store.count()}")
        for record in store.recent_results(args.limit):
            logger.info(
                f"  {record.processed_at_datetime:%Y-%m-%d %H:%M:%S} {record.status.value:<7} "
                f"{record.path or record.fingerprint[:12]}"
            )

        logger.success("\n✓ Ledger ready")
        return 0

    finally:
        store.close()
        logger.info("Ledger closed")


if __name__ == "__main__":
    sys.exit(main())
