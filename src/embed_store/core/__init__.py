"""Core components: data model, errors, configuration and store backends."""

from embed_store.core.config import (
    ChromaConfig,
    RedisConfig,
    StoreConfig,
)
from embed_store.core.errors import (
    BackendError,
    DimensionMismatchError,
    EmbeddingNotFoundError,
    EmbeddingStoreError,
    PreconditionError,
    UnsupportedOperationError,
)
from embed_store.core.models import Embedding, EmbeddingMatch, Metadata, TextSegment

__all__ = [
    "ChromaConfig",
    "RedisConfig",
    "StoreConfig",
    "BackendError",
    "DimensionMismatchError",
    "EmbeddingNotFoundError",
    "EmbeddingStoreError",
    "PreconditionError",
    "UnsupportedOperationError",
    "Embedding",
    "EmbeddingMatch",
    "Metadata",
    "TextSegment",
]
