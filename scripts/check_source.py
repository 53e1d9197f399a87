#!/usr/bin/env python
"""Check record source connectivity.

Runs both source scans once against the configured backend and reports
row counts and the months found.

Usage:
    uv run python scripts/check_source.py [-v]

With -v the source and normalizer log at DEBUG; otherwise only warnings.
"""

import asyncio
import sys

from app.core.config import get_settings
from app.core.exceptions import DashboardError
from app.core.logging import configure_logging
from app.features.dashboard.normalize import normalize_directory, parse_month_key
from app.features.dashboard.source import build_record_source


async def check_source():
    """Fetch records and the store directory once."""
    settings = get_settings()

    print("StorePulse - Record Source Check")
    print("=" * 45)
    print(f"Backend: {settings.record_source_backend}")
    if settings.record_source_backend == "database":
        print(f"Database URL: {settings.database_url.split('@')[-1]}")  # Hide credentials
    else:
        print(f"Supabase URL: {settings.supabase_url}")
        if not settings.supabase_anon_key:
            print("[WARN] SUPABASE_ANON_KEY is empty")
    print(f"Table: {settings.source_table}")
    print()

    source, engine = build_record_source(settings)

    try:
        records = await source.fetch_records()
        print(f"[OK] Record scan: {len(records)} rows")

        months = sorted(
            {key for key in (parse_month_key(r.get("application_month")) for r in records) if key}
        )
        if months:
            print(f"[OK] Months: {months[0]} .. {months[-1]} ({len(months)} total)")
        else:
            print("[WARN] No rows with a valid application_month")

        directory = normalize_directory(await source.fetch_store_directory())
        print(f"[OK] Store directory: {len(directory)} stores")

        print()
        print("Record source check completed successfully!")
        return 0

    except DashboardError as e:
        print(f"[FAIL] {e.message}")
        print()
        print("Troubleshooting:")
        print("  1. Check SUPABASE_URL / SUPABASE_ANON_KEY or DATABASE_URL in .env")
        print("  2. Check SOURCE_TABLE matches the table name exactly")
        print("  3. For the database backend, ensure PostgreSQL is up: docker-compose up -d")
        return 1

    finally:
        await source.aclose()
        if engine is not None:
            await engine.dispose()


def main():
    configure_logging("DEBUG" if "-v" in sys.argv[1:] else "WARNING")
    sys.exit(asyncio.run(check_source()))


if __name__ == "__main__":
    main()
