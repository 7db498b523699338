"""Redis embedding store implementation.

Each entry is one JSON string, so a single SET/GET never exposes half an
entry. Search is exact: vectors are fetched with MGET and scored client-side.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import numpy as np
import redis

from embed_store.core.config import RedisConfig, get_redis_config
from embed_store.core.errors import BackendError, PreconditionError
from embed_store.core.models import Embedding, EmbeddingMatch, TextSegment
from embed_store.core.storage.base import (
    Capability,
    EmbeddingStore,
    MissingIdPolicy,
    StoredEntry,
    rank_matches,
)
from embed_store.core.utils import cosine_similarities, relevance_score_from_cosine

logger = logging.getLogger(__name__)

_MGET_CHUNK = 500


class RedisEmbeddingStore(EmbeddingStore[TextSegment]):
    """Redis-backed store of embeddings with TextSegment payloads.

    Uses Redis data structures:
    - String: entry JSON (key: {prefix}{collection}:entry:{id})
    - ZSET: insertion order used for tie-breaks (key: {prefix}{collection}:order)
    - String: insertion counter (key: {prefix}{collection}:sequence)
    - String: fixed dimension (key: {prefix}{collection}:dimension)

    Updates of unknown ids raise EmbeddingNotFoundError. Socket timeouts and
    connection errors surface as BackendError.
    """

    capabilities = frozenset(
        {Capability.ADD_WITH_ID, Capability.UPDATE, Capability.DELETE, Capability.PAYLOAD}
    )
    missing_id_policy = MissingIdPolicy.FAIL

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        url: str | None = None,
        prefix: str = "embed_store:",
        collection_name: str = "embeddings",
        socket_timeout: float = 5.0,
        dimension: int | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        super().__init__(dimension=dimension)
        self._host = host
        self._port = port
        self._db = db
        self._password = password
        self._url = url
        self._prefix = f"{prefix}{collection_name}:"
        self._socket_timeout = socket_timeout
        self._client = client

    @classmethod
    def from_config(
        cls,
        config: RedisConfig,
        collection_name: str = "embeddings",
        dimension: int | None = None,
    ) -> "RedisEmbeddingStore":
        if config.is_url_based():
            return cls(
                url=config.url,
                prefix=config.prefix,
                collection_name=collection_name,
                socket_timeout=config.socket_timeout,
                dimension=dimension,
            )
        return cls(
            host=config.host or "localhost",
            port=config.port,
            db=config.db,
            password=config.password,
            prefix=config.prefix,
            collection_name=collection_name,
            socket_timeout=config.socket_timeout,
            dimension=dimension,
        )

    @classmethod
    def from_env(cls, collection_name: str = "embeddings") -> "RedisEmbeddingStore":
        """Create store from environment configuration."""
        config = get_redis_config()
        if config is None:
            raise ValueError(
                "Redis not configured. Set REDIS_URL or REDIS_HOST environment variable."
            )
        return cls.from_config(config, collection_name=collection_name)

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            if self._url:
                self._client = redis.from_url(
                    self._url,
                    decode_responses=True,
                    socket_timeout=self._socket_timeout,
                    socket_connect_timeout=self._socket_timeout,
                )
            else:
                self._client = redis.Redis(
                    host=self._host,
                    port=self._port,
                    db=self._db,
                    password=self._password,
                    decode_responses=True,
                    socket_timeout=self._socket_timeout,
                    socket_connect_timeout=self._socket_timeout,
                )
            logger.info("Redis embedding store using namespace '%s'", self._prefix)
        return self._client

    def _entry_key(self, embedding_id: str) -> str:
        return f"{self._prefix}entry:{embedding_id}"

    def _order_key(self) -> str:
        return f"{self._prefix}order"

    def _sequence_key(self) -> str:
        return f"{self._prefix}sequence"

    def _dimension_key(self) -> str:
        return f"{self._prefix}dimension"

    def _serialize(self, entry: StoredEntry[TextSegment]) -> str:
        return json.dumps(
            {
                "id": entry.id,
                "embedding": entry.embedding.vector_as_list(),
                "embedded": entry.embedded.to_dict() if entry.embedded is not None else None,
            }
        )

    def _deserialize(self, data: str | None) -> StoredEntry[TextSegment] | None:
        if data is None:
            return None
        try:
            raw = json.loads(data)
        except json.JSONDecodeError as exc:
            raise BackendError(f"corrupt entry in redis: {exc}") from exc
        embedded = raw.get("embedded")
        return StoredEntry(
            id=raw["id"],
            embedding=Embedding.from_list(raw["embedding"]),
            embedded=TextSegment.from_dict(embedded) if embedded is not None else None,
        )

    @property
    def dimension(self) -> int | None:
        if self._dimension is None:
            with _backend_errors("get dimension"):
                stored = self._get_client().get(self._dimension_key())
            if stored is not None:
                self._dimension = int(stored)
        return self._dimension

    def _validate_embedded(self, embedded: TextSegment | None) -> None:
        if embedded is not None and not isinstance(embedded, TextSegment):
            raise PreconditionError(
                f"{type(self).__name__} stores TextSegment payloads, "
                f"got {type(embedded).__name__}"
            )

    def _write(self, entries: list[StoredEntry[TextSegment]]) -> None:
        client = self._get_client()
        with _backend_errors("write"):
            last = client.incrby(self._sequence_key(), len(entries))
            first = last - len(entries) + 1
            pipe = client.pipeline(transaction=True)
            pipe.set(self._dimension_key(), entries[0].embedding.dimension(), nx=True)
            for offset, entry in enumerate(entries):
                pipe.set(self._entry_key(entry.id), self._serialize(entry))
                # nx keeps the original position of overwritten entries
                pipe.zadd(self._order_key(), {entry.id: first + offset}, nx=True)
            pipe.execute()
        logger.debug("Stored %d embeddings in redis", len(entries))

    def _update(self, entries: list[StoredEntry[TextSegment]], keep_embedded: bool) -> None:
        if not keep_embedded:
            self._write(entries)
            return
        client = self._get_client()
        for entry in entries:
            key = self._entry_key(entry.id)

            def swap_embedding(pipe: Any, entry: StoredEntry[TextSegment] = entry, key: str = key) -> None:
                current = self._deserialize(pipe.get(key))
                embedded = current.embedded if current is not None else None
                pipe.multi()
                pipe.set(
                    key,
                    self._serialize(
                        StoredEntry(id=entry.id, embedding=entry.embedding, embedded=embedded)
                    ),
                )

            with _backend_errors("update"):
                client.transaction(swap_embedding, key)

    def _delete(self, ids: list[str]) -> None:
        client = self._get_client()
        with _backend_errors("delete"):
            pipe = client.pipeline(transaction=True)
            pipe.delete(*[self._entry_key(i) for i in ids])
            pipe.zrem(self._order_key(), *ids)
            pipe.execute()

    def _existing_ids(self, ids: list[str]) -> set[str]:
        client = self._get_client()
        with _backend_errors("exists"):
            pipe = client.pipeline(transaction=False)
            for entry_id in ids:
                pipe.exists(self._entry_key(entry_id))
            flags = pipe.execute()
        return {entry_id for entry_id, flag in zip(ids, flags) if flag}

    def _iter_entries(self) -> Iterator[tuple[float, StoredEntry[TextSegment]]]:
        """Yield (insertion sequence, entry) pairs in insertion order."""
        client = self._get_client()
        with _backend_errors("scan"):
            order = client.zrange(self._order_key(), 0, -1, withscores=True)
        for start in range(0, len(order), _MGET_CHUNK):
            chunk = order[start : start + _MGET_CHUNK]
            with _backend_errors("mget"):
                payloads = client.mget([self._entry_key(i) for i, _ in chunk])
            for (_, sequence), data in zip(chunk, payloads):
                entry = self._deserialize(data)
                if entry is not None:
                    yield sequence, entry

    def _query(
        self, reference: Embedding, max_results: int, min_score: float
    ) -> list[EmbeddingMatch[TextSegment]]:
        rows = list(self._iter_entries())
        if not rows:
            return []

        matrix = np.array([entry.embedding.vector for _, entry in rows], dtype=np.float64)
        similarities = cosine_similarities(matrix, reference.vector)
        candidates = [
            (
                sequence,
                EmbeddingMatch(
                    score=relevance_score_from_cosine(float(similarity)),
                    embedding_id=entry.id,
                    embedding=entry.embedding,
                    embedded=entry.embedded,
                ),
            )
            for (sequence, entry), similarity in zip(rows, similarities)
        ]
        return rank_matches(candidates, max_results, min_score)

    def count(self) -> int:
        with _backend_errors("count"):
            return self._get_client().zcard(self._order_key())

    def clear(self) -> None:
        client = self._get_client()
        with _backend_errors("clear"):
            for key in client.scan_iter(match=f"{self._prefix}*"):
                client.delete(key)
        self._reset_dimension()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


@contextmanager
def _backend_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except redis.RedisError as exc:
        logger.error("Redis %s failed: %s", operation, exc)
        raise BackendError(f"redis {operation} failed: {exc}") from exc
