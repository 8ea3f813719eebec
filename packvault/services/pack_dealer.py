"""Deals packs from the unshown pool and marks them shown."""

import logging
import random

from packvault.models.pack import Pack, PackSpec
from packvault.services.pack_generator import generate_pack
from packvault.services.shown_tracker import ShownStateTracker

logger = logging.getLogger(__name__)


class PackDealer:
    def __init__(self, tracker: ShownStateTracker, rng: random.Random | None = None) -> None:
        self.tracker = tracker
        self.rng = rng or random.Random()

    async def open_pack(self, spec: PackSpec) -> Pack:
        """
        Draw a pack and mark its cards shown.

        An empty pool returns an empty pack and starts a refill. A short
        pack is still returned; ``needs_refill`` tells the caller more cards
        are on the way.
        """
        pool = self.tracker.unshown_pool()
        if not pool:
            logger.info("Unshown pool empty, requesting refill")
            self.tracker.evaluate_refill()
            return Pack(cards=[], requested=spec.card_count, needs_refill=True)

        cards = generate_pack(pool, spec, self.rng)
        shown_recorded = await self.tracker.mark_shown(card.id for card in cards)
        if not shown_recorded:
            logger.error(
                "PACK_SHOWN_STATE_NOT_SAVED",
                extra={"card_ids": [card.id for card in cards]},
            )

        pack = Pack(
            cards=cards,
            requested=spec.card_count,
            needs_refill=self.tracker.needs_refill(),
            shown_recorded=shown_recorded,
        )
        logger.info(
            "PACK_OPENED",
            extra={
                "requested": pack.requested,
                "dealt": len(pack.cards),
                "needs_refill": pack.needs_refill,
                "shown_recorded": pack.shown_recorded,
            },
        )
        return pack
