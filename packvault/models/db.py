"""
SQLAlchemy ORM models for the durable record store.

Models mirror the dataclass models but add database persistence.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, LargeBinary, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Bump when tables gain columns or indices; open() upgrades in place.
SCHEMA_VERSION = 2


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardRecordDB(Base):
    """
    A cached card with its recompressed image.

    Keyed by ``{set_id}-{card_number}``; writes are upserts.
    """

    __tablename__ = "card_records"
    __table_args__ = (
        Index("ix_card_records_shown", "shown"),
        Index("ix_card_records_acquired_at", "acquired_at"),
        Index("ix_card_records_set_id", "set_id"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    set_id: Mapped[str] = mapped_column(String(64))
    set_name: Mapped[str] = mapped_column(String(255))
    card_number: Mapped[str] = mapped_column(String(32))
    remote_image_ref: Mapped[str] = mapped_column(Text)
    compressed_payload: Mapped[bytes] = mapped_column(LargeBinary)
    filename: Mapped[str] = mapped_column(String(255), default="")
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    shown: Mapped[bool] = mapped_column(Boolean, default=False)

    # Added in schema version 2
    rarity: Mapped[str | None] = mapped_column(String(16), nullable=True)

    def __repr__(self) -> str:
        return f"<CardRecordDB(id={self.id}, shown={self.shown})>"


class MetadataDB(Base):
    """Arbitrary key/value pairs (migration flags, schema version, refill time)."""

    __tablename__ = "store_metadata"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<MetadataDB(key={self.key})>"
