"""
Error taxonomy shared by the memory stores.
"""


class MemoryEngineError(Exception):
    """Base exception for memory engine errors."""
    pass


class NotFound(MemoryEngineError):
    """Raised when an entry id or conflict id is unknown."""
    pass


class DimensionMismatch(MemoryEngineError):
    """Raised when two embeddings differ in length or are empty."""
    pass


class DegenerateVector(MemoryEngineError):
    """Raised when an embedding has zero norm."""
    pass


class EmbeddingUnavailable(MemoryEngineError):
    """Raised when the embedding service cannot produce an embedding."""
    pass


class AlreadyResolved(MemoryEngineError):
    """Raised when resolving a conflict that already carries a resolution."""
    pass
