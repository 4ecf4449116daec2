"""
Database Schema Initialization Script
=====================================

Idempotent creation of the analysis tables from ``infrastructure.schema``.

Usage:
    python -m scripts.setup_database
    python -m scripts.setup_database --drop-existing  # Dangerous!
    python -m scripts.setup_database --verify-only
"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from sqlalchemy import inspect

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from infrastructure.database import DatabaseManager
from infrastructure.schema import metadata


def _existing_tables(sync_conn) -> set:
    return set(inspect(sync_conn).get_table_names())


async def setup_schema(db: DatabaseManager, drop_existing: bool = False) -> None:
    async with db.engine.begin() as conn:
        if drop_existing:
            logger.warning("DROP EXISTING flag is SET - all analysis records will be lost!")
            await asyncio.sleep(2)  # Give time to cancel
            await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)
    logger.info(f"Schema ready: {', '.join(sorted(metadata.tables))}")


async def verify_schema(db: DatabaseManager) -> bool:
    async with db.engine.connect() as conn:
        existing = await conn.run_sync(_existing_tables)

    missing = set(metadata.tables) - existing
    for table in sorted(metadata.tables):
        logger.info(f"  {'✓' if table in existing else '✗'} {table}")
    if missing:
        logger.error(f"Missing tables: {', '.join(sorted(missing))}")
    return not missing


async def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize GEO analysis engine database schema")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop analysis tables before creation (DANGEROUS - destroys all data)",
    )
    parser.add_argument(
        "--verify-only", action="store_true", help="Only verify schema without making changes"
    )
    args = parser.parse_args()

    database_manager = DatabaseManager()
    try:
        await database_manager.initialize()

        if not args.verify_only:
            await setup_schema(database_manager, drop_existing=args.drop_existing)

        if await verify_schema(database_manager):
            logger.info("✓ Database setup completed successfully")
            return 0
        logger.error("✗ Schema verification failed")
        return 1

    except Exception as e:
        logger.exception(f"✗ Database setup failed: {e}")
        return 1

    finally:
        await database_manager.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
