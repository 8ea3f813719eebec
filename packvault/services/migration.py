"""
One-shot migration of the legacy single-key mirror into the durable store.

Older builds kept every card only in the mirror document under
LEGACY_MIRROR_KEY. On first start the cards are copied into the durable
store (shown flags preserved) and a completion flag is written so the copy
never runs twice.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from packvault.db.store import DurableRecordStore
from packvault.models.failure import TransactionAbortedError
from packvault.models.session import SessionState
from packvault.storage.adapter import TierStorageAdapter

logger = logging.getLogger(__name__)

LEGACY_MIRROR_KEY = "packvault_session_cards"
MIGRATION_COMPLETED_KEY = "storage_migration_completed"
LAST_MIGRATION_DATE_KEY = "last_migration_date"
MIGRATION_BATCH_SIZE = 20


@dataclass
class MigrationResult:
    success: bool
    migrated_cards: int = 0
    errors: int = 0
    already_migrated: bool = False


async def is_migration_completed(store: DurableRecordStore) -> bool:
    try:
        return await store.get_metadata(MIGRATION_COMPLETED_KEY) is True
    except TransactionAbortedError as e:
        logger.error("Failed to check migration status: %s", e)
        return False


async def _mark_completed(store: DurableRecordStore) -> None:
    await store.set_metadata(MIGRATION_COMPLETED_KEY, True)
    await store.set_metadata(LAST_MIGRATION_DATE_KEY, datetime.now(UTC).isoformat())


async def migrate_legacy_mirror(
    adapter: TierStorageAdapter,
    store: DurableRecordStore,
    *,
    batch_size: int = MIGRATION_BATCH_SIZE,
) -> MigrationResult:
    """
    Copy legacy mirror cards into the durable store.

    Each batch commits on its own; a failed batch counts its cards as errors
    and the rest continue. The legacy document is left in place.
    """
    if await is_migration_completed(store):
        logger.info("Migration already completed, skipping")
        return MigrationResult(success=True, already_migrated=True)

    raw = adapter.get_item(LEGACY_MIRROR_KEY)
    try:
        if raw is None:
            logger.info("No legacy mirror found to migrate")
            await _mark_completed(store)
            return MigrationResult(success=True)

        try:
            legacy = SessionState.from_json(raw)
        except ValueError as e:
            logger.error("Legacy mirror unreadable: %s", e)
            return MigrationResult(success=False, errors=1)

        if not legacy.cards:
            logger.info("Legacy mirror holds no cards")
            await _mark_completed(store)
            return MigrationResult(success=True)

        logger.info("Migrating %d legacy cards", len(legacy.cards))
        migrated = 0
        errors = 0
        for start in range(0, len(legacy.cards), batch_size):
            batch = legacy.cards[start : start + batch_size]
            try:
                await store.add_records(batch)
                migrated += len(batch)
                logger.debug("Migrated batch %d: %d cards", start // batch_size + 1, len(batch))
            except TransactionAbortedError as e:
                logger.error("Failed to migrate batch %d: %s", start // batch_size + 1, e)
                errors += len(batch)

        await _mark_completed(store)
    except TransactionAbortedError as e:
        logger.error("Migration failed: %s", e)
        return MigrationResult(success=False, errors=1)

    logger.info(
        "MIGRATION_COMPLETE",
        extra={"migrated_cards": migrated, "errors": errors},
    )
    return MigrationResult(success=errors == 0, migrated_cards=migrated, errors=errors)


def clear_legacy_storage(adapter: TierStorageAdapter) -> None:
    """Remove the legacy mirror document."""
    adapter.remove_item(LEGACY_MIRROR_KEY)
    logger.info("Cleared legacy mirror")


async def reset_migration(store: DurableRecordStore) -> None:
    """Allow the migration to run again on next start."""
    await store.set_metadata(MIGRATION_COMPLETED_KEY, False)
    logger.info("Migration status reset")
