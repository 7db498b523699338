"""Conformance harness for embedding store backends (requires pytest)."""

from embed_store.testing.conformance import EmbeddingStoreConformance, HashEmbeddingModel

__all__ = ["EmbeddingStoreConformance", "HashEmbeddingModel"]
