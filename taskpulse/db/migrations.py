"""Database migration runner."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


async def init_database(db_path: Path | str) -> None:
    """Create the tables if they don't exist yet."""
    schema_path = Path(__file__).parent / "schema.sql"

    async with aiosqlite.connect(db_path) as db:
        with open(schema_path) as f:
            schema_sql = f.read()

        await db.executescript(schema_sql)
        await db.commit()

        logger.info(f"Database initialized at {db_path}")


async def get_schema_version(db_path: Path | str) -> int:
    async with aiosqlite.connect(db_path) as db:
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0


async def run_migrations(db_path: Path | str) -> None:
    """Bring the database up to SCHEMA_VERSION.

    Later schema changes go here as steps keyed on `PRAGMA user_version`.
    """
    version = await get_schema_version(db_path)
    if version >= SCHEMA_VERSION:
        logger.debug(f"Database schema is current (version {version})")
        return

    await init_database(db_path)

    async with aiosqlite.connect(db_path) as db:
        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        await db.commit()

    logger.info(f"Database migrated from version {version} to {SCHEMA_VERSION}")
