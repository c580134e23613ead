#!/usr/bin/env python3
"""Install or verify the pathstore schema.

Usage:
    # Using environment variables:
    DATABASE_URL=postgresql://localhost/pathstore python scripts/apply_schema.py

    # Or with command line args:
    python scripts/apply_schema.py --dsn postgresql://localhost/pathstore

    # Only check that every table exists:
    python scripts/apply_schema.py --verify-only

    # Print the DDL without touching the database:
    python scripts/apply_schema.py --dry-run

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    DB_STATEMENT_TIMEOUT_MS: optional server-side statement timeout
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def apply_schema(dsn: str | None = None, verify_only: bool = False) -> dict:
    """Apply the bundled DDL (unless ``verify_only``) and verify the result.

    Returns:
        dict with status ('applied' or 'verified')
    """
    # Import here so .env is read after argument parsing
    from pathstore.config import get_settings
    from pathstore.storage.store import StoreHandle

    settings = get_settings().model_copy(
        update={"pool_min_size": 1, "pool_max_size": 1, **({"database_url": dsn} if dsn else {})}
    )
    with StoreHandle.from_settings(settings) as store:
        if not verify_only:
            store.apply_schema()
        store.verify_schema()
    return {"status": "verified" if verify_only else "applied"}


def main():
    parser = argparse.ArgumentParser(
        description="Apply the pathstore schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dsn",
        help="Postgres DSN (defaults to DATABASE_URL from the environment or .env)",
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Only check that the required tables exist",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the DDL without connecting",
    )

    args = parser.parse_args()

    if args.dry_run:
        from pathstore.storage.schema import load_schema_sql

        print(load_schema_sql())
        return

    try:
        result = apply_schema(args.dsn, verify_only=args.verify_only)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "applied":
        print("Schema applied and verified.")
    else:
        print("Schema verified: all required tables exist.")


if __name__ == "__main__":
    main()
