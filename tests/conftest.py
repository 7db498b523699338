"""Shared test fixtures."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from embed_store.core.models import Embedding  # noqa: E402
from embed_store.core.storage.memory import InMemoryEmbeddingStore  # noqa: E402
from embed_store.testing import HashEmbeddingModel  # noqa: E402


@pytest.fixture
def memory_store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore()


@pytest.fixture
def hash_model() -> HashEmbeddingModel:
    return HashEmbeddingModel()


@pytest.fixture
def unit_x() -> Embedding:
    return Embedding([1.0, 0.0, 0.0])
