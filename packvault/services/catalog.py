"""
Card catalog backed by the CSV manifest.

The manifest lists every card image the game can deal:
set_id,set_name,card_number,filename,download_date,image_url,is_hires,
file_size,download_duration,status[,card_name,rarity]

Only set_id, set_name, card_number and image_url are required.
"""

import csv
import logging
import random
from collections.abc import Collection
from pathlib import Path
from typing import Protocol

from packvault.models.card import CardDescriptor

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = frozenset({"set_id", "set_name", "card_number", "image_url"})


class CardCatalog(Protocol):
    """Supplies candidate descriptors for acquisition."""

    async def random_candidates(
        self, count: int, exclude: Collection[str] = ()
    ) -> list[CardDescriptor]:
        """Up to ``count`` distinct candidates, none with an id in ``exclude``."""
        ...


class CatalogError(Exception):
    """Raised when the manifest cannot be read."""

    pass


def parse_manifest(path: Path) -> list[CardDescriptor]:
    """
    Read descriptors from a manifest file.

    Rows missing a required value are skipped.

    Raises:
        CatalogError: If the file is missing, undecodable or lacks required columns
    """
    try:
        with open(path, encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            columns = set(reader.fieldnames or [])
            missing = REQUIRED_COLUMNS - columns
            if missing:
                raise CatalogError(f"Manifest {path} missing columns: {sorted(missing)}")

            descriptors: list[CardDescriptor] = []
            seen: set[str] = set()
            for row in reader:
                if not all((row.get(col) or "").strip() for col in REQUIRED_COLUMNS):
                    continue
                descriptor = CardDescriptor(
                    set_id=row["set_id"].strip(),
                    set_name=row["set_name"].strip(),
                    card_number=row["card_number"].strip(),
                    remote_image_ref=row["image_url"].strip(),
                    filename=(row.get("filename") or "").strip(),
                    card_name=(row.get("card_name") or "").strip() or None,
                    rarity=(row.get("rarity") or "").strip() or None,
                )
                if descriptor.id in seen:
                    continue
                seen.add(descriptor.id)
                descriptors.append(descriptor)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise CatalogError(f"Cannot read manifest {path}: {e}") from e

    return descriptors


class ManifestCatalog:
    """Random candidate selection over the CSV manifest."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        descriptors: list[CardDescriptor] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.path = path
        self._descriptors = descriptors
        self._rng = rng or random.Random()

    def load(self) -> list[CardDescriptor]:
        """Load (once) and return all descriptors."""
        if self._descriptors is None:
            if self.path is None:
                raise CatalogError("No manifest path configured")
            self._descriptors = parse_manifest(self.path)
            logger.info("Loaded %d card descriptors from %s", len(self._descriptors), self.path)
        return self._descriptors

    async def random_candidates(
        self, count: int, exclude: Collection[str] = ()
    ) -> list[CardDescriptor]:
        """
        Random selection without replacement.

        Returns fewer than ``count`` when supply runs out. An unreadable
        manifest yields an empty list.
        """
        try:
            descriptors = self.load()
        except CatalogError as e:
            logger.error("Catalog unavailable: %s", e)
            return []

        excluded = set(exclude)
        pool = [d for d in descriptors if d.id not in excluded]
        if not pool:
            logger.warning("No candidates left in catalog")
            return []

        return self._rng.sample(pool, min(count, len(pool)))
