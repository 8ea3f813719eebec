"""
Eviction strategies for the mirror document.

Each strategy is pure: it takes a SessionState and returns a reduced copy,
leaving the input untouched. The adapter walks EVICTION_LADDER in order,
retrying the write after each step.
"""

from collections.abc import Callable
from dataclasses import replace

from packvault.models.session import SessionState

EvictionStrategy = Callable[[SessionState], SessionState]


def drop_shown(state: SessionState) -> SessionState:
    """Remove every record that has already been shown."""
    cards = [card for card in state.cards if card.id not in state.shown_ids]
    return replace(state, cards=cards, shown_ids=set())


def keep_most_recent(limit: int) -> EvictionStrategy:
    """Build a strategy that keeps only the ``limit`` newest records."""

    def strategy(state: SessionState) -> SessionState:
        cards = state.cards[:limit]
        kept = {card.id for card in cards}
        return replace(state, cards=cards, shown_ids=state.shown_ids & kept)

    strategy.__name__ = f"keep_most_recent_{limit}"
    return strategy


EVICTION_LADDER: tuple[EvictionStrategy, ...] = (
    drop_shown,
    keep_most_recent(50),
    keep_most_recent(10),
)
