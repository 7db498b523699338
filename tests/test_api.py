"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from embed_store import api
from embed_store.core.errors import BackendError
from embed_store.core.storage.base import EmbeddingStore
from embed_store.core.storage.memory import InMemoryEmbeddingStore
from embed_store.testing import HashEmbeddingModel


class _SearchOnlyStore(EmbeddingStore[None]):
    def _query(self, reference, max_results, min_score):
        return []

    def count(self) -> int:
        return 0


@pytest.fixture
def store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore()


@pytest.fixture
def model() -> HashEmbeddingModel:
    return HashEmbeddingModel(dimension=8)


@pytest.fixture
def client(store: InMemoryEmbeddingStore, model: HashEmbeddingModel):
    api.app.dependency_overrides[api.get_store] = lambda: store
    api.app.dependency_overrides[api.get_embedding_model] = lambda: model
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_add_embedding_generates_id(client: TestClient, store: InMemoryEmbeddingStore) -> None:
    response = client.post("/api/embeddings", json={"embedding": [1.0, 0.0, 0.0]})

    assert response.status_code == 201
    embedding_id = response.json()["id"]
    assert store.get(embedding_id) is not None


def test_add_with_id_and_text(client: TestClient, store: InMemoryEmbeddingStore) -> None:
    response = client.post(
        "/api/embeddings",
        json={"id": "doc-1", "text": "hello world", "metadata": {"page": 3}},
    )

    assert response.status_code == 201
    assert response.json() == {"id": "doc-1"}
    entry = store.get("doc-1")
    assert entry.embedded.text == "hello world"
    assert entry.embedded.metadata["page"] == 3
    assert entry.embedding.dimension() == 8


def test_add_requires_embedding_or_text(client: TestClient) -> None:
    response = client.post("/api/embeddings", json={"metadata": {"a": "b"}})
    assert response.status_code == 422


def test_add_rejects_metadata_without_text(client: TestClient) -> None:
    response = client.post(
        "/api/embeddings", json={"embedding": [1.0], "metadata": {"a": "b"}}
    )
    assert response.status_code == 422


def test_add_rejects_empty_embedding(client: TestClient) -> None:
    response = client.post("/api/embeddings", json={"embedding": []})
    assert response.status_code == 422


def test_dimension_mismatch_is_422(client: TestClient) -> None:
    client.post("/api/embeddings", json={"embedding": [1.0, 0.0, 0.0]})
    response = client.post("/api/embeddings", json={"embedding": [1.0, 0.0]})

    assert response.status_code == 422
    assert "dimension" in response.json()["detail"]


def test_search_returns_ranked_matches(client: TestClient) -> None:
    client.post("/api/embeddings", json={"id": "x", "embedding": [1.0, 0.0]})
    client.post("/api/embeddings", json={"id": "y", "embedding": [0.0, 1.0]})
    client.post("/api/embeddings", json={"id": "neg", "embedding": [-1.0, 0.0]})

    response = client.post(
        "/api/embeddings/search",
        json={"embedding": [1.0, 0.0], "max_results": 5, "min_score": 0.4},
    )

    assert response.status_code == 200
    body = response.json()
    assert [m["embedding_id"] for m in body] == ["x", "y"]
    assert body[0]["score"] == pytest.approx(1.0)
    assert body[1]["score"] == pytest.approx(0.5)
    assert body[0]["embedding"] == [1.0, 0.0]
    assert body[0]["text"] is None


def test_search_by_text(client: TestClient) -> None:
    client.post("/api/embeddings", json={"id": "greeting", "text": "hello"})
    client.post("/api/embeddings", json={"id": "farewell", "text": "goodbye"})

    response = client.post("/api/embeddings/search", json={"text": "hello", "max_results": 1})

    body = response.json()
    assert len(body) == 1
    assert body[0]["embedding_id"] == "greeting"
    assert body[0]["text"] == "hello"
    assert body[0]["metadata"] == {}
    assert body[0]["score"] == pytest.approx(1.0)


def test_search_rejects_invalid_min_score(client: TestClient) -> None:
    client.post("/api/embeddings", json={"embedding": [1.0, 0.0]})
    response = client.post(
        "/api/embeddings/search", json={"embedding": [1.0, 0.0], "min_score": 1.5}
    )
    assert response.status_code == 422


def test_update_keeps_payload(client: TestClient, store: InMemoryEmbeddingStore) -> None:
    client.post("/api/embeddings", json={"id": "doc", "text": "original"})

    response = client.put("/api/embeddings/doc", json={"embedding": [0.5] * 8})

    assert response.status_code == 204
    entry = store.get("doc")
    assert entry.embedding.vector_as_list() == [0.5] * 8
    assert entry.embedded.text == "original"


def test_update_replaces_payload(client: TestClient, store: InMemoryEmbeddingStore) -> None:
    client.post("/api/embeddings", json={"id": "doc", "text": "original"})

    response = client.put("/api/embeddings/doc", json={"text": "revised"})

    assert response.status_code == 204
    assert store.get("doc").embedded.text == "revised"


def test_update_unknown_id_is_404(client: TestClient) -> None:
    client.post("/api/embeddings", json={"embedding": [1.0, 0.0]})
    response = client.put("/api/embeddings/missing", json={"embedding": [0.0, 1.0]})
    assert response.status_code == 404


def test_delete(client: TestClient, store: InMemoryEmbeddingStore) -> None:
    client.post("/api/embeddings", json={"id": "doc", "embedding": [1.0, 0.0]})

    assert client.delete("/api/embeddings/doc").status_code == 204
    assert store.count() == 0
    assert client.delete("/api/embeddings/doc").status_code == 204


def test_stats(client: TestClient) -> None:
    client.post("/api/embeddings", json={"embedding": [1.0, 0.0, 0.0]})

    response = client.get("/api/embeddings/stats")

    assert response.json() == {
        "backend": "InMemoryEmbeddingStore",
        "count": 1,
        "dimension": 3,
    }


def test_unsupported_operation_is_501(client: TestClient) -> None:
    api.app.dependency_overrides[api.get_store] = lambda: _SearchOnlyStore()
    response = client.delete("/api/embeddings/anything")
    assert response.status_code == 501


def test_backend_error_is_503(client: TestClient, store: InMemoryEmbeddingStore, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise BackendError("store unavailable")

    monkeypatch.setattr(store, "_query", fail)
    client.post("/api/embeddings", json={"embedding": [1.0, 0.0]})

    response = client.post("/api/embeddings/search", json={"embedding": [1.0, 0.0]})

    assert response.status_code == 503
    assert response.json()["detail"] == "store unavailable"
