"""
Mirror-tier projection of the card cache.

The fast tier holds one JSON document per session: the ordered records
(newest first), the shown ids, a loading flag and the last refill time.
It is redundant with the durable store and exists only for synchronous reads.
"""

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from packvault.models.card import CardRecord, Rarity


def record_to_dict(record: CardRecord) -> dict[str, Any]:
    """Serialize a record for the mirror document."""
    return {
        "id": record.id,
        "setId": record.set_id,
        "setName": record.set_name,
        "cardNumber": record.card_number,
        "remoteImageRef": record.remote_image_ref,
        "compressedPayload": base64.b64encode(record.compressed_payload).decode("ascii"),
        "filename": record.filename,
        "acquiredAt": record.acquired_at.isoformat() if record.acquired_at else None,
        "rarity": record.rarity.value if record.rarity else None,
    }


def record_from_dict(data: dict[str, Any], *, shown: bool = False) -> CardRecord:
    """Inverse of ``record_to_dict``."""
    acquired_at = data.get("acquiredAt")
    rarity = data.get("rarity")
    return CardRecord(
        id=data["id"],
        set_id=data["setId"],
        set_name=data["setName"],
        card_number=data["cardNumber"],
        remote_image_ref=data["remoteImageRef"],
        compressed_payload=base64.b64decode(data.get("compressedPayload") or ""),
        filename=data.get("filename", ""),
        acquired_at=datetime.fromisoformat(acquired_at) if acquired_at else None,
        shown=shown,
        rarity=Rarity(rarity) if rarity else None,
    )


@dataclass
class SessionState:
    """
    Mirror contents.

    Attributes:
        cards: Records, newest first
        shown_ids: Ids already dealt
        is_loading: True while an acquisition is running
        last_refill_at: Unix time of the last successful refill
    """

    cards: list[CardRecord] = field(default_factory=list)
    shown_ids: set[str] = field(default_factory=set)
    is_loading: bool = False
    last_refill_at: float | None = None

    @property
    def card_ids(self) -> set[str]:
        return {card.id for card in self.cards}

    def shown_count(self) -> int:
        """Shown ids that still have a record in the mirror."""
        return len(self.shown_ids & self.card_ids)

    def unshown_cards(self) -> list[CardRecord]:
        return [card for card in self.cards if card.id not in self.shown_ids]

    def to_json(self) -> str:
        return json.dumps(
            {
                "cards": [record_to_dict(card) for card in self.cards],
                "shownCardIds": sorted(self.shown_ids),
                "isLoading": self.is_loading,
                "lastRefillAt": self.last_refill_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "SessionState":
        """
        Parse a mirror document.

        Raises:
            ValueError: If the document is not valid JSON or lacks fields
        """
        try:
            data = json.loads(raw)
            shown_ids = set(data.get("shownCardIds", []))
            cards = [
                record_from_dict(item, shown=item["id"] in shown_ids)
                for item in data.get("cards", [])
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed session document: {e}") from e

        return cls(
            cards=cards,
            shown_ids=shown_ids,
            is_loading=bool(data.get("isLoading", False)),
            last_refill_at=data.get("lastRefillAt"),
        )
