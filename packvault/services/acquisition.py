"""
Batch Acquisition Pipeline.

Fetches remote card images in waves of bounded width, recompresses them and
writes the results through the Cache Bridge in one call.

RULES:
- Acquisitions are a multiple of the pack size and never exceed the
  working-set ceiling.
- Each wave waits for all of its tasks before the next wave starts.
- A failed candidate is dropped, whatever the failure: timeout, non-2xx,
  empty body, undecodable image or an unexpected error. No retry, no
  placeholder.
- Partial success is success. Only zero produced records is a failure.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from packvault.config import FETCH_TIMEOUT_SECONDS, PACK_SIZE, WAVE_WIDTH, WORKING_SET_CAP
from packvault.models.card import CardDescriptor, CardRecord
from packvault.models.failure import FetchError, FetchFailedError, FetchTimeoutError
from packvault.services.cache_bridge import CacheBridge
from packvault.services.catalog import CardCatalog
from packvault.services.image_compression import ImageCompressionOptions, compress_image
from packvault.services.rarity import ManifestRarityClassifier, RarityClassifier

logger = logging.getLogger(__name__)

USER_AGENT = "PackVault/1.0"
IMAGE_ACCEPT = "image/png,image/jpeg,image/webp,image/*"


@dataclass
class AcquisitionResult:
    """
    Outcome of one pipeline run.

    Attributes:
        requested: Count asked for by the caller
        planned: Count after applying headroom and pack rounding
        attempted: Candidates actually fetched
        produced: Records successfully fetched and compressed
        written: Records committed through the bridge
        success: False only when nothing could be produced or stored
        reason: Short machine-readable note for no-op and failed runs
    """

    requested: int
    planned: int = 0
    attempted: int = 0
    produced: int = 0
    written: int = 0
    success: bool = True
    reason: str | None = None


def plan_acquisition(
    requested: int,
    current_count: int,
    *,
    cap: int = WORKING_SET_CAP,
    pack_size: int = PACK_SIZE,
) -> int:
    """
    Number of cards to fetch.

    ``min(requested, cap - current_count)`` rounded down to a multiple of
    ``pack_size``. Zero means there is no room for a full pack.
    """
    available = max(0, cap - current_count)
    wanted = max(0, min(requested, available))
    return (wanted // pack_size) * pack_size


async def fetch_image(client: httpx.AsyncClient, url: str, timeout: float) -> bytes:
    """
    GET an image with a fixed overall timeout.

    Raises:
        FetchTimeoutError: If the request did not finish within ``timeout``
        FetchFailedError: On transport errors, non-2xx status or empty body
    """
    try:
        async with asyncio.timeout(timeout):
            response = await client.get(url, headers={"Accept": IMAGE_ACCEPT})
    except (TimeoutError, httpx.TimeoutException) as e:
        raise FetchTimeoutError(url, timeout) from e
    except httpx.HTTPError as e:
        raise FetchFailedError(url, detail=str(e)) from e

    if not response.is_success:
        raise FetchFailedError(url, detail=f"HTTP {response.status_code}")
    if not response.content:
        raise FetchFailedError(url, detail="empty body")
    return response.content


class AcquisitionPipeline:
    """Fills the working set from the catalog."""

    def __init__(
        self,
        bridge: CacheBridge,
        catalog: CardCatalog,
        *,
        classifier: RarityClassifier | None = None,
        client: httpx.AsyncClient | None = None,
        cap: int = WORKING_SET_CAP,
        pack_size: int = PACK_SIZE,
        wave_width: int = WAVE_WIDTH,
        fetch_timeout: float = FETCH_TIMEOUT_SECONDS,
        image_options: ImageCompressionOptions | None = None,
    ) -> None:
        if wave_width < 1:
            raise ValueError("wave_width must be at least 1")
        self.bridge = bridge
        self.catalog = catalog
        self._manifest_rarity = ManifestRarityClassifier()
        self.classifier = classifier or self._manifest_rarity
        self._client = client
        self.cap = cap
        self.pack_size = pack_size
        self.wave_width = wave_width
        self.fetch_timeout = fetch_timeout
        self.image_options = image_options or ImageCompressionOptions()

    async def acquire_one(
        self, client: httpx.AsyncClient, descriptor: CardDescriptor
    ) -> CardRecord | None:
        """Fetch, compress and tag one candidate. None if it was dropped."""
        url = descriptor.remote_image_ref
        try:
            raw = await fetch_image(client, url, self.fetch_timeout)
            compressed = await asyncio.to_thread(compress_image, raw, self.image_options, url)
        except FetchError as e:
            logger.debug("Dropped candidate %s: %s (%s)", descriptor.id, e.kind.value, e.detail)
            return None
        except Exception as e:
            logger.error("Dropped candidate %s: unexpected error: %s", descriptor.id, e)
            return None

        try:
            rarity = await self.classifier.classify(descriptor)
        except Exception as e:
            logger.warning("Rarity lookup failed for %s, using manifest: %s", descriptor.id, e)
            rarity = await self._manifest_rarity.classify(descriptor)
        logger.debug(
            "Card %s compressed: %d -> %d bytes (%.1f%% reduction)",
            descriptor.id,
            compressed.original_size,
            compressed.compressed_size,
            compressed.compression_ratio,
        )
        return CardRecord(
            id=descriptor.id,
            set_id=descriptor.set_id,
            set_name=descriptor.set_name,
            card_number=descriptor.card_number,
            remote_image_ref=url,
            compressed_payload=compressed.data,
            filename=descriptor.filename,
            acquired_at=datetime.now(UTC),
            shown=False,
            rarity=rarity,
        )

    async def _run_waves(
        self, client: httpx.AsyncClient, candidates: Sequence[CardDescriptor]
    ) -> list[CardRecord]:
        produced: list[CardRecord] = []
        total = len(candidates)

        for start in range(0, total, self.wave_width):
            wave = candidates[start : start + self.wave_width]
            results = await asyncio.gather(*(self.acquire_one(client, d) for d in wave))
            produced.extend(record for record in results if record is not None)
            logger.info(
                "Wave done: %d/%d candidates processed, %d produced",
                min(start + len(wave), total),
                total,
                len(produced),
            )

        return produced

    async def run(self, requested_count: int) -> AcquisitionResult:
        """
        Acquire up to ``requested_count`` cards.

        Never raises for per-candidate failures; see AcquisitionResult.
        """
        current = self.bridge.get_cards()
        planned = plan_acquisition(
            requested_count, len(current), cap=self.cap, pack_size=self.pack_size
        )
        result = AcquisitionResult(requested=requested_count, planned=planned)

        if planned == 0:
            logger.info(
                "No room for a full pack (%d/%d cards cached)", len(current), self.cap
            )
            result.reason = "at_capacity"
            return result

        candidates = await self.catalog.random_candidates(
            planned, exclude={card.id for card in current}
        )
        result.attempted = len(candidates)
        if not candidates:
            logger.error("No cards available for acquisition")
            result.success = False
            result.reason = "no_candidates"
            return result

        started = time.monotonic()
        if self._client is not None:
            produced = await self._run_waves(self._client, candidates)
        else:
            async with httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                timeout=self.fetch_timeout,
            ) as client:
                produced = await self._run_waves(client, candidates)

        result.produced = len(produced)
        if not produced:
            logger.error("Failed to acquire any of %d candidates", len(candidates))
            result.success = False
            result.reason = "all_fetches_failed"
            return result

        # The mirror may have changed while waves were in flight
        headroom = max(0, self.cap - len(self.bridge.get_cards()))
        to_write = produced[:headroom]
        if len(to_write) < len(produced):
            logger.info("Trimmed %d records to stay within ceiling", len(produced) - len(to_write))

        if to_write and not await self.bridge.add_cards(to_write):
            result.success = False
            result.reason = "transaction_aborted"
            return result

        result.written = len(to_write)
        logger.info(
            "ACQUISITION_COMPLETE",
            extra={
                "planned": planned,
                "attempted": result.attempted,
                "produced": result.produced,
                "written": result.written,
                "elapsed_s": round(time.monotonic() - started, 2),
            },
        )
        return result
