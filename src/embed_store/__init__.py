"""Embedding Store

Storage and similarity search of embeddings paired with the content they
were derived from.

Features:
- One store contract for every backend, with explicit capability checks
- Exact in-memory reference store, ChromaDB and Redis backends
- Relevance scores normalized to [0, 1] from cosine similarity
- Conformance test harness for new backends
"""

from embed_store.core.config import StoreConfig
from embed_store.core.errors import (
    BackendError,
    DimensionMismatchError,
    EmbeddingNotFoundError,
    EmbeddingStoreError,
    PreconditionError,
    UnsupportedOperationError,
)
from embed_store.core.models import Embedding, EmbeddingMatch, Metadata, TextSegment
from embed_store.core.storage.base import Capability, EmbeddingStore, MissingIdPolicy
from embed_store.core.storage.config import create_embedding_store
from embed_store.core.storage.memory import InMemoryEmbeddingStore

__version__ = "0.1.0"
__all__ = [
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
    "Capability",
    "EmbeddingStore",
    "MissingIdPolicy",
    "create_embedding_store",
    "InMemoryEmbeddingStore",
]
