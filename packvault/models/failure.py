"""
Failure classification for the card cache engine.

Two layers:
- Exceptions raised inside the engine (storage, fetch, transaction errors).
- The ``ApiResponse`` envelope the HTTP layer uses to report outcomes.

PROPAGATION:
- Tier storage failures never escape the adapter; they become False returns.
- Fetch failures drop a single candidate and are never surfaced individually.
- Transaction failures are reported to the caller as zero-acquired.
- An empty unshown pool produces a short pack, not an error.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"

    # Storage failures
    STORAGE_UNAVAILABLE = "storage_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSACTION_ABORTED = "transaction_aborted"

    # Acquisition failures
    FETCH_TIMEOUT = "fetch_timeout"
    FETCH_FAILED = "fetch_failed"

    # Pack generation
    EMPTY_POOL = "empty_pool"

    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope for all HTTP endpoints."""

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """Create a known failure response."""
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def unknown_failure(cls, detail: str | None = None) -> "ApiResponse[Any]":
        """Create an unknown failure response."""
        return cls(
            outcome=OutcomeType.UNKNOWN_FAILURE,
            failure=FailureDetail(
                kind=FailureKind.UNKNOWN,
                message="Something went wrong and the cause is unknown. Please retry.",
                detail=detail,
                suggestion="If this persists, please report the issue.",
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# STORAGE
# =============================================================================


class StorageUnavailableError(KnownError):
    """No persistent mirror tier could be activated."""

    def __init__(self, detail: str | None = None):
        super().__init__(
            kind=FailureKind.STORAGE_UNAVAILABLE,
            message="Card storage is running in memory only; cards will not persist.",
            detail=detail,
            status_code=503,
        )


class QuotaExceededError(KnownError):
    """A tier refused a write because its capacity is exhausted."""

    def __init__(self, tier: str, needed: int | None = None, quota: int | None = None):
        self.tier = tier
        self.needed = needed
        self.quota = quota
        detail = f"tier={tier}"
        if needed is not None and quota is not None:
            detail += f" needed={needed} quota={quota}"
        super().__init__(
            kind=FailureKind.QUOTA_EXCEEDED,
            message="Card storage is full.",
            detail=detail,
            suggestion="Remove some cards and try again.",
            status_code=507,
        )


class TransactionAbortedError(KnownError):
    """A durable store transaction failed and was rolled back."""

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        super().__init__(
            kind=FailureKind.TRANSACTION_ABORTED,
            message=f"Saving cards failed during {operation}.",
            detail=detail,
            status_code=503,
        )


# =============================================================================
# ACQUISITION
# =============================================================================


class FetchError(KnownError):
    """Base class for failures fetching or decoding one remote image."""

    def __init__(self, url: str, kind: FailureKind, detail: str | None = None):
        self.url = url
        super().__init__(
            kind=kind,
            message=f"Could not fetch card image from {url}",
            detail=detail,
            status_code=502,
        )


class FetchTimeoutError(FetchError):
    """The fetch exceeded its fixed timeout."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, FailureKind.FETCH_TIMEOUT, detail=f"timeout after {timeout}s")


class FetchFailedError(FetchError):
    """Non-2xx response, empty body, or transport error."""

    def __init__(self, url: str, detail: str | None = None):
        super().__init__(url, FailureKind.FETCH_FAILED, detail=detail)


class ImageDecodeError(FetchFailedError):
    """The fetched body could not be decoded as an image."""


# =============================================================================
# PACKS
# =============================================================================


class EmptyPoolError(KnownError):
    """No unshown cards are available to deal."""

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.EMPTY_POOL,
            message="No new cards are ready yet. More are downloading in the background.",
            suggestion="Try again in a few seconds.",
            status_code=409,
        )


class PackTypeNotFoundError(KnownError):
    """The requested pack preset does not exist."""

    def __init__(self, pack_type_id: str) -> None:
        self.pack_type_id = pack_type_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"Unknown pack type: {pack_type_id}",
            suggestion="List the available pack types at /packs/types.",
            status_code=404,
        )
