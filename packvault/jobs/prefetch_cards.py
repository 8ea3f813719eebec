"""
Job to prefetch card images into the cache.

Starts the engine, fills the working set up to its ceiling and shuts down.
Can be run as a standalone script or called from a scheduler:

    python -m packvault.jobs.prefetch_cards
"""

import asyncio
import logging

from packvault.services.engine import CardEngine

logger = logging.getLogger(__name__)


async def run_prefetch(
    count: int | None = None,
    engine: CardEngine | None = None,
) -> dict[str, int]:
    """
    Fill the cache.

    Args:
        count: Cards to request. If None, requests up to the ceiling.
        engine: Engine to use. If None, one is built from settings and
            closed afterwards.

    Returns:
        Dict with the final total and unshown counts and the cards written
    """
    owns_engine = engine is None
    engine = engine or CardEngine.from_settings()

    try:
        report = await engine.start()
        # Initial load may already be running
        await engine.tracker.wait_for_refill()

        if engine.tracker.request_refill(count, reason="prefetch"):
            await engine.tracker.wait_for_refill()

        total = await engine.bridge.get_card_count()
        unshown = await engine.bridge.get_unshown_count()
    finally:
        if owns_engine:
            await engine.close()

    written = max(0, total - report.warmed_cards)

    logger.info(
        "Prefetch complete. %d cards written, %d cached (%d unshown)", written, total, unshown
    )
    return {"written": written, "total": total, "unshown": unshown}


def main() -> None:
    """CLI entry point for running the prefetch."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_prefetch())


if __name__ == "__main__":
    main()
