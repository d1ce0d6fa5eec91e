"""
Error taxonomy for the knowledge engine.
"""

from typing import List


class ContinuityError(Exception):
    """Base class for all engine errors."""


class DirectiveValidationError(ContinuityError):
    """A parsed directive is missing required fields or carries invalid ones."""

    def __init__(self, kind: str, errors: List[str]):
        self.kind = kind
        self.errors = errors
        super().__init__(f"Invalid {kind} directive: {'; '.join(errors)}")


class RecordNotFoundError(ContinuityError):
    """The target record id does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class DimensionMismatchError(ContinuityError, ValueError):
    """Two vectors of unequal length were compared or mixed in one index."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vector dimension {left} does not match dimension {right}")


class EmbeddingProviderError(ContinuityError):
    """The embedding provider failed or timed out."""


class StorageError(ContinuityError):
    """Invalid use of the record store."""
