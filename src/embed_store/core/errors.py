"""Exception hierarchy for embedding store operations.

- UnsupportedOperationError: backend does not implement a capability
- PreconditionError: malformed input, raised before any mutation
- BackendError: failure of the underlying storage medium
"""


class EmbeddingStoreError(Exception):
    """Base class for all embedding store failures."""


class UnsupportedOperationError(EmbeddingStoreError, NotImplementedError):
    """Raised when a backend does not implement the requested operation."""

    def __init__(self, operation: str, backend: str | None = None) -> None:
        self.operation = operation
        self.backend = backend
        where = f" by {backend}" if backend else ""
        super().__init__(f"{operation} is not supported{where}")


class PreconditionError(EmbeddingStoreError, ValueError):
    """Raised when input violates the store contract. Store state is unchanged."""


class DimensionMismatchError(PreconditionError):
    """Raised when an embedding's dimension differs from the store dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"embedding dimension mismatch: expected {expected}, got {actual}"
        )


class EmbeddingNotFoundError(PreconditionError):
    """Raised by backends whose update policy rejects unknown ids."""

    def __init__(self, embedding_id: str) -> None:
        self.embedding_id = embedding_id
        super().__init__(f"no embedding stored with id '{embedding_id}'")


class BackendError(EmbeddingStoreError, RuntimeError):
    """Raised when the storage medium fails (I/O, network, capacity)."""
