"""Tests for RedisEmbeddingStore.

Conformance runs against a live server when REDIS_URL is set; the error
mapping tests use a mocked client.
"""

import os
import uuid
from unittest.mock import MagicMock

import pytest
import redis

from embed_store.core.config import RedisConfig
from embed_store.core.errors import BackendError, PreconditionError
from embed_store.core.models import Embedding, TextSegment
from embed_store.core.storage import MissingIdPolicy, RedisEmbeddingStore
from embed_store.testing import EmbeddingStoreConformance

REDIS_URL = os.getenv("REDIS_URL")

requires_redis = pytest.mark.skipif(REDIS_URL is None, reason="REDIS_URL not set")


@requires_redis
class TestRedisConformance(EmbeddingStoreConformance):
    def create_store(self) -> RedisEmbeddingStore:
        return RedisEmbeddingStore(
            url=REDIS_URL, collection_name=f"test_{uuid.uuid4().hex[:8]}"
        )

    @pytest.fixture
    def store(self):
        store = self.create_store()
        yield store
        store.clear()
        store.close()


@requires_redis
class TestRedisLive:
    @pytest.fixture
    def store(self):
        store = RedisEmbeddingStore(url=REDIS_URL, collection_name=f"test_{uuid.uuid4().hex[:8]}")
        yield store
        store.clear()
        store.close()

    def test_dimension_is_shared_between_instances(self) -> None:
        name = f"test_{uuid.uuid4().hex[:8]}"
        writer = RedisEmbeddingStore(url=REDIS_URL, collection_name=name)
        reader = RedisEmbeddingStore(url=REDIS_URL, collection_name=name)
        try:
            writer.add(Embedding([1.0, 0.0, 0.0]))
            assert reader.dimension == 3
            assert reader.count() == 1
        finally:
            writer.clear()
            writer.close()
            reader.close()

    def test_overwrite_keeps_insertion_position(self, store: RedisEmbeddingStore) -> None:
        store.add_with_id("first", Embedding([1.0, 0.0]))
        store.add_with_id("second", Embedding([1.0, 0.0]))
        store.add_with_id("first", Embedding([1.0, 0.0]), TextSegment.from_text("again"))

        matches = store.find_relevant(Embedding([1.0, 0.0]), 2)
        assert [m.embedding_id for m in matches] == ["first", "second"]
        assert store.count() == 2

    def test_clear_only_touches_own_namespace(self, store: RedisEmbeddingStore) -> None:
        neighbour = RedisEmbeddingStore(url=REDIS_URL, collection_name=f"test_{uuid.uuid4().hex[:8]}")
        try:
            neighbour.add(Embedding([0.0, 1.0]))
            store.add(Embedding([1.0, 0.0]))
            store.clear()
            assert store.count() == 0
            assert neighbour.count() == 1
        finally:
            neighbour.clear()
            neighbour.close()


class TestRedisEmbeddingStore:
    """Behaviour that needs no server."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock(spec=redis.Redis)
        client.get.return_value = None
        return client

    @pytest.fixture
    def store(self, client: MagicMock) -> RedisEmbeddingStore:
        return RedisEmbeddingStore(collection_name="unit", client=client)

    def test_update_policy_is_fail(self, store: RedisEmbeddingStore) -> None:
        assert store.missing_id_policy is MissingIdPolicy.FAIL

    def test_key_layout(self, store: RedisEmbeddingStore) -> None:
        assert store._entry_key("a") == "embed_store:unit:entry:a"
        assert store._order_key() == "embed_store:unit:order"
        assert store._sequence_key() == "embed_store:unit:sequence"
        assert store._dimension_key() == "embed_store:unit:dimension"

    def test_rejects_non_segment_payload(self, store: RedisEmbeddingStore, client: MagicMock) -> None:
        with pytest.raises(PreconditionError):
            store.add(Embedding([1.0, 0.0]), "plain string")  # type: ignore[arg-type]
        client.incrby.assert_not_called()

    def test_timeout_surfaces_as_backend_error(
        self, store: RedisEmbeddingStore, client: MagicMock
    ) -> None:
        client.zrange.side_effect = redis.TimeoutError("Timeout reading from socket")

        with pytest.raises(BackendError, match="Timeout") as exc_info:
            store.find_relevant(Embedding([1.0, 0.0]), 3)
        assert isinstance(exc_info.value.__cause__, redis.TimeoutError)

    def test_connection_error_surfaces_as_backend_error(
        self, store: RedisEmbeddingStore, client: MagicMock
    ) -> None:
        client.incrby.side_effect = redis.ConnectionError("Connection refused")

        with pytest.raises(BackendError):
            store.add(Embedding([1.0, 0.0]))

    def test_count_error_surfaces_as_backend_error(
        self, store: RedisEmbeddingStore, client: MagicMock
    ) -> None:
        client.zcard.side_effect = redis.ConnectionError("Connection reset by peer")

        with pytest.raises(BackendError):
            store.count()

    def test_corrupt_entry_surfaces_as_backend_error(
        self, store: RedisEmbeddingStore, client: MagicMock
    ) -> None:
        client.get.return_value = "2"
        client.zrange.return_value = [("a", 1.0)]
        client.mget.return_value = ["{not json"]

        with pytest.raises(BackendError, match="corrupt"):
            store.find_relevant(Embedding([1.0, 0.0]), 1)

    def test_dimension_is_read_from_server(
        self, store: RedisEmbeddingStore, client: MagicMock
    ) -> None:
        client.get.return_value = "384"
        assert store.dimension == 384
        client.get.assert_called_once_with("embed_store:unit:dimension")

    def test_close_closes_client(self, store: RedisEmbeddingStore, client: MagicMock) -> None:
        store.close()
        client.close.assert_called_once()
        assert store._client is None


class TestRedisConfigWiring:
    def test_from_config_url(self) -> None:
        config = RedisConfig(url="redis://cache:6380/2", prefix="app:", socket_timeout=1.5)
        store = RedisEmbeddingStore.from_config(config, collection_name="docs", dimension=4)

        assert store._url == "redis://cache:6380/2"
        assert store._prefix == "app:docs:"
        assert store._socket_timeout == 1.5
        assert store.dimension == 4

    def test_from_config_host(self) -> None:
        config = RedisConfig(url=None, host="cache", port=6380, db=3, password="secret")
        store = RedisEmbeddingStore.from_config(config)

        assert store._url is None
        assert store._host == "cache"
        assert store._port == 6380
        assert store._db == 3
        assert store._password == "secret"

    def test_from_env_requires_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.delenv("REDIS_HOST", raising=False)
        monkeypatch.chdir(os.path.dirname(__file__))

        with pytest.raises(ValueError, match="Redis not configured"):
            RedisEmbeddingStore.from_env()
