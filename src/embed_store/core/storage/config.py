"""Factory function for creating embedding store instances from config."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from embed_store.core.storage.base import MissingIdPolicy

if TYPE_CHECKING:
    from embed_store.core.config import StoreConfig
    from embed_store.core.storage.base import EmbeddingStore

logger = logging.getLogger(__name__)


def create_embedding_store(config: "StoreConfig") -> "EmbeddingStore[Any]":
    """Create embedding store instance from config.

    Args:
        config: Store configuration

    Returns:
        InMemoryEmbeddingStore, ChromaEmbeddingStore or RedisEmbeddingStore

    Raises:
        ValueError: If redis backend is selected but redis config is missing
    """
    logger.info("Creating %s embedding store", config.backend)
    if config.backend == "redis":
        from embed_store.core.storage.redis import RedisEmbeddingStore

        if config.redis is None:
            raise ValueError("Redis config required for redis backend")
        return RedisEmbeddingStore.from_config(
            config.redis,
            collection_name=config.collection_name,
            dimension=config.dimension,
        )

    if config.backend == "chroma":
        from embed_store.core.config import ChromaConfig
        from embed_store.core.storage.chroma import ChromaEmbeddingStore

        return ChromaEmbeddingStore.from_config(
            config.chroma or ChromaConfig(),
            collection_name=config.collection_name,
            dimension=config.dimension,
        )

    from embed_store.core.storage.memory import InMemoryEmbeddingStore

    if config.persist_path and Path(config.persist_path).exists():
        store = InMemoryEmbeddingStore.load(config.persist_path)
        if config.dimension is not None and store.dimension not in (None, config.dimension):
            raise ValueError(
                f"{config.persist_path} holds {store.dimension}-dimensional embeddings, "
                f"config expects {config.dimension}"
            )
        store.missing_id_policy = MissingIdPolicy(config.missing_id_policy)
        return store

    return InMemoryEmbeddingStore(
        dimension=config.dimension,
        missing_id_policy=config.missing_id_policy,
    )
