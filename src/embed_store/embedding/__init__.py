"""Embedding model implementations."""

from embed_store.embedding.base import EmbeddingModel
from embed_store.embedding.default import DefaultEmbeddingModel

__all__ = ["EmbeddingModel", "DefaultEmbeddingModel"]
