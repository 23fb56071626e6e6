#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# PURPOSE: Deploy the media schema to PostgreSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Check current status
# ============================================================================

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from psycopg import sql

from core.logging import configure_logging
from repositories.database import SCHEMA, close_pool, get_connection_string, init_pool
from repositories.schema import deploy_schema, generate_ddl

TABLES = ("media_assets", "asset_metadata")


async def _status(connection: str) -> int:
    pool = await init_pool(min_size=1, max_size=1, connection_string=connection)
    try:
        async with pool.connection() as conn:
            cur = await conn.execute(
                "SELECT 1 FROM information_schema.schemata WHERE schema_name = %s", (SCHEMA,)
            )
            exists = await cur.fetchone() is not None
            print(f"Schema exists: {exists}")
            if not exists:
                return 1

            for table in TABLES:
                cur = await conn.execute(
                    "SELECT 1 FROM information_schema.tables "
                    "WHERE table_schema = %s AND table_name = %s",
                    (SCHEMA, table),
                )
                if await cur.fetchone() is None:
                    print(f"  - {SCHEMA}.{table}: MISSING")
                    continue
                cur = await conn.execute(
                    sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(SCHEMA, table))
                )
                (count,) = await cur.fetchone()
                print(f"  - {SCHEMA}.{table}: {count} rows")
        return 0
    finally:
        await close_pool()


async def _deploy(connection: str) -> int:
    pool = await init_pool(min_size=1, max_size=1, connection_string=connection)
    try:
        return await deploy_schema(pool)
    finally:
        await close_pool()


def main():
    parser = argparse.ArgumentParser(
        description="Deploy the media schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema
  python scripts/deploy_schema.py --status      # Check current installation

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
  POSTGRES_SSLMODE      SSL mode (default: require)
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print DDL without executing"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Check current installation status"
    )
    parser.add_argument(
        "--connection",
        type=str,
        help="PostgreSQL connection string (overrides environment)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "INFO")

    print("=" * 70)
    print("MEDIA LIFECYCLE - Schema Deployment")
    print("=" * 70)
    print(f"Schema: {SCHEMA}")

    if args.dry_run:
        print("\nMode: DRY RUN\n")
        for stmt in generate_ddl():
            print(stmt.as_string() + ";\n")
        print("=" * 70)
        return

    connection = args.connection or get_connection_string()

    if args.status:
        print("\n[STATUS CHECK]\n")
        sys.exit(asyncio.run(_status(connection)))

    print("\nMode: EXECUTE\n")
    try:
        count = asyncio.run(_deploy(connection))
    except Exception as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    print(f"Deployment completed: {count} statements executed")
    print("=" * 70)


if __name__ == "__main__":
    main()
