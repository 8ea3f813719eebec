from packvault.models.card import CardDescriptor, CardRecord, Rarity, make_card_id
from packvault.models.failure import (
    ApiResponse,
    EmptyPoolError,
    FailureDetail,
    FailureKind,
    FetchError,
    FetchFailedError,
    FetchTimeoutError,
    ImageDecodeError,
    KnownError,
    OutcomeType,
    QuotaExceededError,
    StorageUnavailableError,
    TransactionAbortedError,
)
from packvault.models.pack import (
    PACK_TYPES,
    RARITY_WALK_ORDER,
    Pack,
    PackSpec,
    PackType,
    get_default_pack_type,
    get_pack_type,
)
from packvault.models.session import SessionState, record_from_dict, record_to_dict

__all__ = [
    "PACK_TYPES",
    "RARITY_WALK_ORDER",
    "ApiResponse",
    "CardDescriptor",
    "CardRecord",
    "EmptyPoolError",
    "FailureDetail",
    "FailureKind",
    "FetchError",
    "FetchFailedError",
    "FetchTimeoutError",
    "ImageDecodeError",
    "KnownError",
    "OutcomeType",
    "Pack",
    "PackSpec",
    "PackType",
    "QuotaExceededError",
    "Rarity",
    "SessionState",
    "StorageUnavailableError",
    "TransactionAbortedError",
    "get_default_pack_type",
    "get_pack_type",
    "make_card_id",
    "record_from_dict",
    "record_to_dict",
]
