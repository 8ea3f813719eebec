"""
Durable record store.

Authoritative, transactional persistence for card records. Every public
method runs in its own transaction; SQLAlchemy failures surface as
TransactionAbortedError.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from packvault.db import operations
from packvault.db.database import init_db
from packvault.models.card import CardRecord
from packvault.models.failure import TransactionAbortedError

logger = logging.getLogger(__name__)


class DurableRecordStore:
    """Async card record store backed by SQLAlchemy."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._opened = False
        self._open_lock = asyncio.Lock()

    async def open(self) -> None:
        """
        Create or upgrade the schema.

        Idempotent; concurrent callers wait for the first to finish.
        """
        if self._opened:
            return

        async with self._open_lock:
            if self._opened:
                return
            try:
                await init_db(self.engine)
            except SQLAlchemyError as e:
                logger.error("Failed to open durable store: %s", e)
                raise TransactionAbortedError("open", detail=str(e)) from e
            self._opened = True
            logger.info("Durable store opened")

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        await self.open()
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error("Transaction %s aborted: %s", operation, e)
            raise TransactionAbortedError(operation, detail=str(e)) from e

    # --- Records ---

    async def add_records(self, batch: Sequence[CardRecord]) -> int:
        """
        Upsert a batch in one transaction.

        Either every record commits or none do.

        Raises:
            TransactionAbortedError: If the batch could not be committed
        """
        if not batch:
            return 0
        async with self._transaction("add_records") as session:
            written = await operations.upsert_records(session, batch)
        logger.info("Stored %d records", written)
        return written

    async def get_record(self, record_id: str) -> CardRecord | None:
        async with self._transaction("get_record") as session:
            db_record = await operations.get_record(session, record_id)
            return operations.record_to_model(db_record) if db_record else None

    async def get_all(self) -> list[CardRecord]:
        """All records, newest first."""
        async with self._transaction("get_all") as session:
            rows = await operations.get_all_records(session)
            return [operations.record_to_model(row) for row in rows]

    async def get_unshown(self, limit: int | None = None) -> list[CardRecord]:
        async with self._transaction("get_unshown") as session:
            rows = await operations.get_unshown_records(session, limit=limit)
            return [operations.record_to_model(row) for row in rows]

    async def count(self) -> int:
        async with self._transaction("count") as session:
            return await operations.count_records(session)

    async def unshown_count(self) -> int:
        async with self._transaction("unshown_count") as session:
            return await operations.count_records(session, unshown_only=True)

    async def mark_shown(self, record_ids: Iterable[str]) -> int:
        """Mark records shown in one transaction; unknown ids are ignored."""
        async with self._transaction("mark_shown") as session:
            flipped = await operations.mark_records_shown(session, record_ids)
        logger.debug("Marked %d records as shown", flipped)
        return flipped

    async def delete_records(self, record_ids: Iterable[str]) -> int:
        async with self._transaction("delete_records") as session:
            deleted = await operations.delete_records(session, record_ids)
        logger.debug("Deleted %d records", deleted)
        return deleted

    async def clear(self) -> int:
        async with self._transaction("clear") as session:
            deleted = await operations.clear_records(session)
        logger.info("Cleared %d records", deleted)
        return deleted

    # --- Metadata ---

    async def get_metadata(self, key: str) -> Any:
        async with self._transaction("get_metadata") as session:
            return await operations.get_metadata(session, key)

    async def set_metadata(self, key: str, value: Any) -> None:
        async with self._transaction("set_metadata") as session:
            await operations.set_metadata(session, key, value)

    async def delete_metadata(self, keys: Iterable[str]) -> int:
        async with self._transaction("delete_metadata") as session:
            return await operations.delete_metadata(session, keys)

    async def ping(self) -> bool:
        """True if the database answers a trivial query."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
