"""Error taxonomy for ingestion and retrieval."""

from dataclasses import dataclass
from enum import Enum


class PolicyEngineError(Exception):
    """Base class for ingestion and retrieval failures."""

    pass


class ValidationFailure(PolicyEngineError):
    """Input rejected before any provider call."""

    pass


class DocumentNotFoundError(ValidationFailure):
    """Referenced document does not exist."""

    pass


class ChunksAlreadyExistError(PolicyEngineError):
    """Document already has chunks; they are never re-split."""

    pass


class EmbeddingErrorKind(str, Enum):
    """Distinguishable embedding provider failure modes."""

    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    UNAVAILABLE = "unavailable"
    MALFORMED_RESPONSE = "malformed_response"


class EmbeddingProviderError(PolicyEngineError):
    """Embedding provider failed or returned an unusable vector."""

    def __init__(self, message: str, kind: EmbeddingErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


class ExtractionError(PolicyEngineError):
    """Stored document could not be turned into plain text."""

    pass


class AnswerSynthesisError(PolicyEngineError):
    """Completion provider failed."""

    pass


class RetrievalError(PolicyEngineError):
    """A required retrieval stage failed."""

    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message)
        self.stage = stage


class OperationCancelledError(PolicyEngineError):
    """Caller cancelled the operation."""

    pass


@dataclass
class CancelToken:
    """Token for cancellation signaling."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancelled."""
        if self.cancelled:
            raise OperationCancelledError("operation cancelled")
