"""Embedding store backends.

- EmbeddingStore: Abstract store contract with capability query
- InMemoryEmbeddingStore: Exact in-process store, reference implementation
- ChromaEmbeddingStore: ChromaDB collection in cosine space
- RedisEmbeddingStore: Redis-backed store with exact client-side search
"""

from embed_store.core.storage.base import (
    Capability,
    EmbeddingStore,
    MissingIdPolicy,
    StoredEntry,
    rank_matches,
)
from embed_store.core.storage.chroma import ChromaEmbeddingStore
from embed_store.core.storage.config import create_embedding_store
from embed_store.core.storage.memory import InMemoryEmbeddingStore
from embed_store.core.storage.redis import RedisEmbeddingStore

__all__ = [
    "Capability",
    "EmbeddingStore",
    "MissingIdPolicy",
    "StoredEntry",
    "rank_matches",
    "InMemoryEmbeddingStore",
    "ChromaEmbeddingStore",
    "RedisEmbeddingStore",
    "create_embedding_store",
]
