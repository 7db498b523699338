"""Tests for ChromaEmbeddingStore using ephemeral in-process clients."""

import threading
import uuid
from unittest.mock import MagicMock

import chromadb
import pytest

from embed_store.core.config import ChromaConfig
from embed_store.core.errors import BackendError, PreconditionError
from embed_store.core.models import Embedding, TextSegment
from embed_store.core.storage import ChromaEmbeddingStore, MissingIdPolicy
from embed_store.testing import EmbeddingStoreConformance


def create_test_store(**kwargs) -> ChromaEmbeddingStore:
    """Create a store with an isolated collection."""
    collection_name = f"test_store_{uuid.uuid4().hex[:8]}"
    return ChromaEmbeddingStore(collection_name=collection_name, **kwargs)


class TestChromaConformance(EmbeddingStoreConformance):
    def create_store(self) -> ChromaEmbeddingStore:
        return create_test_store()


class TestChromaEmbeddingStore:
    """Backend-specific behaviour of the Chroma store."""

    @pytest.fixture
    def store(self) -> ChromaEmbeddingStore:
        return create_test_store()

    def test_update_policy_is_fail(self, store: ChromaEmbeddingStore) -> None:
        assert store.missing_id_policy is MissingIdPolicy.FAIL

    def test_rejects_non_segment_payload(self, store: ChromaEmbeddingStore) -> None:
        with pytest.raises(PreconditionError):
            store.add(Embedding([1.0, 0.0]), {"not": "a segment"})  # type: ignore[arg-type]
        assert store.count() == 0

    def test_rejects_reserved_metadata_key(self, store: ChromaEmbeddingStore) -> None:
        segment = TextSegment.from_text("x", {"_embed_store_has_embedded": True})
        with pytest.raises(PreconditionError):
            store.add(Embedding([1.0, 0.0]), segment)

    def test_empty_segment_differs_from_no_payload(self, store: ChromaEmbeddingStore) -> None:
        with_payload = store.add(Embedding([1.0, 0.0]), TextSegment.from_text(""))
        without_payload = store.add(Embedding([0.0, 1.0]))

        by_id = {m.embedding_id: m for m in store.find_relevant(Embedding([1.0, 1.0]), 2)}
        assert by_id[with_payload].embedded == TextSegment.from_text("")
        assert by_id[without_payload].embedded is None

    def test_dimension_is_read_from_collection(self, tmp_path) -> None:
        writer = ChromaEmbeddingStore(path=str(tmp_path), mode="persistent")
        writer.add(Embedding([1.0, 0.0, 0.0]))

        reader = ChromaEmbeddingStore(path=str(tmp_path), mode="persistent")
        assert reader.dimension == 3
        assert reader.count() == 1

    def test_clear(self, store: ChromaEmbeddingStore) -> None:
        store.add_all([Embedding([1.0, 0.0]), Embedding([0.0, 1.0])])
        store.clear()
        assert store.count() == 0
        assert store.find_relevant(Embedding([1.0, 0.0]), 5) == []

    def test_close_resets_client(self, store: ChromaEmbeddingStore) -> None:
        store.get_client()
        store.close()
        assert store._client is None

    def test_backend_failure_is_wrapped(self, store: ChromaEmbeddingStore) -> None:
        collection = MagicMock()
        collection.upsert.side_effect = RuntimeError("disk full")
        store._client = MagicMock()
        store._collection = collection

        with pytest.raises(BackendError, match="disk full") as exc_info:
            store.add(Embedding([1.0, 0.0]))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_from_config_modes(self, tmp_path) -> None:
        ephemeral = ChromaEmbeddingStore.from_config(ChromaConfig(mode="ephemeral"))
        assert ephemeral._mode == "ephemeral"

        persistent = ChromaEmbeddingStore.from_config(
            ChromaConfig(mode="persistent", path=str(tmp_path)), collection_name="docs"
        )
        assert persistent._mode == "persistent"
        assert persistent._path == str(tmp_path)
        assert persistent._collection_name == "docs"

        client = ChromaEmbeddingStore.from_config(ChromaConfig(mode="client"), dimension=8)
        assert client._mode == "client"
        assert client._host == "localhost"
        assert client._port == 8000
        assert client.dimension == 8

    def test_persistent_store_survives_reopen(self, tmp_path) -> None:
        segment = TextSegment.from_text("persisted", {"page": 1})
        first = ChromaEmbeddingStore(path=str(tmp_path), mode="persistent")
        embedding_id = first.add(Embedding([0.5, 0.25]), segment)
        first.close()

        second = ChromaEmbeddingStore(path=str(tmp_path), mode="persistent")
        match = second.find_relevant(Embedding([0.5, 0.25]), 1)[0]
        assert match.embedding_id == embedding_id
        assert match.embedded == segment


class TestChromaRanking:
    @pytest.fixture
    def store(self) -> ChromaEmbeddingStore:
        return create_test_store()

    def test_ties_beyond_max_results_are_ordered_by_id(self, store: ChromaEmbeddingStore) -> None:
        ids = [f"id{i:02d}" for i in reversed(range(30))]
        store.add_all_with_ids(ids, [Embedding([0.5, 0.25, 0.125])] * len(ids))

        matches = store.find_relevant(Embedding([0.5, 0.25, 0.125]), 3)

        assert [m.embedding_id for m in matches] == ["id00", "id01", "id02"]
        assert all(m.score == 1.0 for m in matches)

    def test_ties_below_min_score_are_not_widened(self, store: ChromaEmbeddingStore) -> None:
        store.add_with_id("best", Embedding([1.0, 0.0]))
        store.add_all_with_ids([f"side{i}" for i in range(5)], [Embedding([0.0, 1.0])] * 5)

        matches = store.find_relevant(Embedding([1.0, 0.0]), 2, min_score=0.9)

        assert [m.embedding_id for m in matches] == ["best"]

    def test_nearly_parallel_vector_scores_below_one(self, store: ChromaEmbeddingStore) -> None:
        store.add_with_id("exact", Embedding([1.0, 0.0, 0.0]))
        store.add_with_id("tilted", Embedding([1.0, 0.001, 0.0]))

        relevant = store.find_relevant(Embedding([1.0, 0.0, 0.0]), 10, min_score=1.0)

        assert [m.embedding_id for m in relevant] == ["exact"]


class TestChromaClientTimeout:
    def test_stalled_query_raises_backend_error(self) -> None:
        release = threading.Event()
        collection = MagicMock()
        collection.count.return_value = 1
        collection.query.side_effect = lambda **kwargs: release.wait(5)

        store = ChromaEmbeddingStore(mode="client", host="localhost", dimension=2, timeout=0.05)
        store._client = MagicMock()
        store._collection = collection
        try:
            with pytest.raises(BackendError, match="timed out"):
                store.find_relevant(Embedding([1.0, 0.0]), 1)
        finally:
            release.set()
            store.close()

    def test_stalled_connect_raises_backend_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        release = threading.Event()

        def stalled_client(**kwargs):
            release.wait(5)
            return MagicMock()

        monkeypatch.setattr(chromadb, "HttpClient", stalled_client)
        store = ChromaEmbeddingStore(mode="client", host="localhost", timeout=0.05)
        try:
            with pytest.raises(BackendError, match="connect timed out"):
                store.count()
            assert store._client is None
        finally:
            release.set()
            store.close()

    def test_timeout_comes_from_config(self) -> None:
        store = ChromaEmbeddingStore.from_config(ChromaConfig(mode="client", timeout=2.5))
        assert store._timeout == 2.5

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(PreconditionError):
            ChromaEmbeddingStore(timeout=0)
