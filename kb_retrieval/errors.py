"""Exceptions raised by the knowledge base engine."""


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""
    pass


class NotFoundError(KnowledgeBaseError, KeyError):
    """Raised when a knowledge base or source index does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class UnsupportedSourceKindError(KnowledgeBaseError, ValueError):
    """Raised when a source kind is outside the recognized set."""
    pass


class ExtractionError(KnowledgeBaseError):
    """Raised when plain text cannot be extracted from a source."""
    pass


class InvalidQueryError(KnowledgeBaseError, ValueError):
    """Raised for a blank question or a non-positive top_k / max_tokens."""
    pass


class StoreCorruptedError(KnowledgeBaseError):
    """Raised when the persisted collection cannot be read back."""
    pass
