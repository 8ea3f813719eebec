"""
Database engine and in-place schema upgrades.

Provides the default async SQLAlchemy engine for the durable store.
"""

import logging

from sqlalchemy import Connection, delete, insert, inspect, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from packvault.config import settings
from packvault.models.db import SCHEMA_VERSION, Base, MetadataDB

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "schema_version"

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)


def _upgrade_schema(conn: Connection) -> int:
    """
    Bring the schema up to SCHEMA_VERSION without losing data.

    Creates missing tables, adds missing nullable columns to existing tables
    and creates missing indices. Returns the version found before upgrading
    (0 for a fresh database).
    """
    inspector = inspect(conn)
    existing_tables = set(inspector.get_table_names())

    metadata_table = MetadataDB.__table__
    previous = 0
    if metadata_table.name in existing_tables:
        stored = conn.execute(
            select(metadata_table.c.value).where(metadata_table.c.key == SCHEMA_VERSION_KEY)
        ).scalar_one_or_none()
        if stored is not None:
            previous = int(stored)
    if previous == 0 and existing_tables:
        # Tables predating version tracking
        previous = 1

    Base.metadata.create_all(conn)

    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue

        present = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in present:
                continue
            if not column.nullable:
                msg = f"Cannot add non-nullable column {table.name}.{column.name} in place"
                raise RuntimeError(msg)
            col_type = column.type.compile(dialect=conn.dialect)
            conn.execute(text(f"ALTER TABLE {table.name} ADD COLUMN {column.name} {col_type}"))
            logger.info("Added column %s.%s", table.name, column.name)

        for index in table.indexes:
            index.create(conn, checkfirst=True)

    conn.execute(delete(metadata_table).where(metadata_table.c.key == SCHEMA_VERSION_KEY))
    conn.execute(insert(metadata_table).values(key=SCHEMA_VERSION_KEY, value=SCHEMA_VERSION))
    return previous


async def init_db(db_engine: AsyncEngine | None = None) -> int:
    """
    Initialize or upgrade database tables.

    Safe to call repeatedly. Returns the schema version found before the call.
    """
    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        previous = await conn.run_sync(_upgrade_schema)

    if previous != SCHEMA_VERSION:
        logger.info(
            "SCHEMA_UPGRADED",
            extra={"from_version": previous, "to_version": SCHEMA_VERSION},
        )
    return previous


async def drop_db(db_engine: AsyncEngine | None = None) -> None:
    """
    Drop all database tables.

    WARNING: Destroys all data. Use only for testing.
    """
    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
