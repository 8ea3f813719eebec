"""
Database CRUD operations.

Provides async functions for reading and writing card records and
store metadata. Callers own the session and its transaction.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from packvault.models.card import CardRecord, Rarity
from packvault.models.db import CardRecordDB, MetadataDB

# --- Card Record Operations ---


def record_to_model(db_record: CardRecordDB) -> CardRecord:
    """Convert a database record to a domain model."""
    acquired_at = db_record.acquired_at
    if acquired_at is not None and acquired_at.tzinfo is None:
        # SQLite drops tzinfo; everything is stored in UTC
        acquired_at = acquired_at.replace(tzinfo=UTC)

    return CardRecord(
        id=db_record.id,
        set_id=db_record.set_id,
        set_name=db_record.set_name,
        card_number=db_record.card_number,
        remote_image_ref=db_record.remote_image_ref,
        compressed_payload=db_record.compressed_payload,
        filename=db_record.filename,
        acquired_at=acquired_at,
        shown=db_record.shown,
        rarity=Rarity(db_record.rarity) if db_record.rarity else None,
    )


async def upsert_records(session: AsyncSession, records: Sequence[CardRecord]) -> int:
    """
    Insert or replace card records.

    Records without ``acquired_at`` are stamped with the current time.
    Returns the number of records written.
    """
    now = datetime.now(UTC)
    for record in records:
        await session.merge(
            CardRecordDB(
                id=record.id,
                set_id=record.set_id,
                set_name=record.set_name,
                card_number=record.card_number,
                remote_image_ref=record.remote_image_ref,
                compressed_payload=record.compressed_payload,
                filename=record.filename,
                acquired_at=record.acquired_at or now,
                shown=bool(record.shown),
                rarity=record.rarity.value if record.rarity else None,
            )
        )

    await session.flush()
    return len(records)


async def get_record(session: AsyncSession, record_id: str) -> CardRecordDB | None:
    """Get a record by id. Returns None if absent."""
    return await session.get(CardRecordDB, record_id)


async def get_all_records(session: AsyncSession) -> list[CardRecordDB]:
    """All records, newest first."""
    result = await session.execute(
        select(CardRecordDB).order_by(CardRecordDB.acquired_at.desc(), CardRecordDB.id)
    )
    return list(result.scalars().all())


async def get_unshown_records(session: AsyncSession, limit: int | None = None) -> list[CardRecordDB]:
    """Records not yet shown, newest first (scans the shown index)."""
    stmt = (
        select(CardRecordDB)
        .where(CardRecordDB.shown.is_(False))
        .order_by(CardRecordDB.acquired_at.desc(), CardRecordDB.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_records(session: AsyncSession, *, unshown_only: bool = False) -> int:
    """Count all records, or only unshown ones."""
    stmt = select(func.count()).select_from(CardRecordDB)
    if unshown_only:
        stmt = stmt.where(CardRecordDB.shown.is_(False))
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def mark_records_shown(session: AsyncSession, record_ids: Iterable[str]) -> int:
    """
    Mark records as shown.

    Ids with no matching record are ignored. Returns the number of
    records that flipped from unshown to shown.
    """
    ids = set(record_ids)
    if not ids:
        return 0

    result = await session.execute(select(CardRecordDB).where(CardRecordDB.id.in_(ids)))
    flipped = 0
    for db_record in result.scalars():
        if not db_record.shown:
            db_record.shown = True
            flipped += 1

    await session.flush()
    return flipped


async def delete_records(session: AsyncSession, record_ids: Iterable[str]) -> int:
    """
    Delete records by id.

    Returns the number of deleted records.
    """
    ids = set(record_ids)
    if not ids:
        return 0
    result = await session.execute(delete(CardRecordDB).where(CardRecordDB.id.in_(ids)))
    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


async def clear_records(session: AsyncSession) -> int:
    """Delete every card record. Returns the number deleted."""
    result = await session.execute(delete(CardRecordDB))
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Metadata Operations ---


async def get_metadata(session: AsyncSession, key: str) -> Any:
    """Get a metadata value. Returns None if the key is absent."""
    entry = await session.get(MetadataDB, key)
    return entry.value if entry else None


async def set_metadata(session: AsyncSession, key: str, value: Any) -> None:
    """Insert or update a metadata value."""
    entry = await session.get(MetadataDB, key)
    if entry:
        entry.value = value
    else:
        session.add(MetadataDB(key=key, value=value))
    await session.flush()


async def delete_metadata(session: AsyncSession, keys: Iterable[str]) -> int:
    """Delete metadata entries. Returns the number deleted."""
    key_set = set(keys)
    if not key_set:
        return 0
    result = await session.execute(delete(MetadataDB).where(MetadataDB.key.in_(key_set)))
    return int(result.rowcount)  # type: ignore[attr-defined]
