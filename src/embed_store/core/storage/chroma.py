"""ChromaDB embedding store implementation."""

import logging
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from typing import Any, TypeVar

import chromadb
import numpy as np
from chromadb.api import ClientAPI
from chromadb.config import Settings

from embed_store.core.config import ChromaConfig, get_chroma_config
from embed_store.core.errors import BackendError, PreconditionError
from embed_store.core.models import Embedding, EmbeddingMatch, Metadata, TextSegment
from embed_store.core.storage.base import (
    Capability,
    EmbeddingStore,
    MissingIdPolicy,
    StoredEntry,
    rank_matches,
)
from embed_store.core.utils import cosine_similarities, relevance_score_from_cosine

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Always present in stored metadata, so Chroma never sees an empty dict and
# entries without payload can be told apart from an empty TextSegment.
_HAS_EMBEDDED_KEY = "_embed_store_has_embedded"


class ChromaEmbeddingStore(EmbeddingStore[TextSegment]):
    """ChromaDB-backed store of embeddings with TextSegment payloads.

    Chroma's HNSW index (cosine space) picks the candidates; their scores are
    recomputed in float64 from the returned embeddings, so identical
    directions score exactly 1.0 and nearly identical ones do not. Equal
    scores are ordered by id: the candidate set is widened until every entry
    tied with the last kept score has been fetched.

    In client mode every server call runs on a worker thread and fails with
    BackendError after ``timeout`` seconds, since chromadb's HTTP client
    itself never times out.

    Updates of unknown ids raise EmbeddingNotFoundError.
    """

    capabilities = frozenset(
        {Capability.ADD_WITH_ID, Capability.UPDATE, Capability.DELETE, Capability.PAYLOAD}
    )
    missing_id_policy = MissingIdPolicy.FAIL

    def __init__(
        self,
        collection_name: str = "embeddings",
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        mode: str = "ephemeral",
        dimension: int | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(dimension=dimension)
        if timeout <= 0:
            raise PreconditionError(f"timeout must be positive, got {timeout}")
        self._collection_name = collection_name
        self._host = host
        self._port = port
        self._path = path
        self._mode = mode
        self._timeout = timeout
        self._client: ClientAPI | None = None
        self._collection: chromadb.Collection | None = None
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_config(
        cls,
        config: ChromaConfig,
        collection_name: str = "embeddings",
        dimension: int | None = None,
    ) -> "ChromaEmbeddingStore":
        if config.is_client_mode():
            return cls(
                collection_name=collection_name,
                host=config.host or "localhost",
                port=config.port or 8000,
                mode="client",
                dimension=dimension,
                timeout=config.timeout,
            )
        if config.is_persistent_mode():
            return cls(
                collection_name=collection_name,
                path=config.path,
                mode="persistent",
                dimension=dimension,
            )
        return cls(collection_name=collection_name, mode="ephemeral", dimension=dimension)

    @classmethod
    def from_env(cls, collection_name: str = "embeddings") -> "ChromaEmbeddingStore":
        """Create from environment configuration."""
        return cls.from_config(get_chroma_config(), collection_name=collection_name)

    def get_client(self) -> ClientAPI:
        self._init_client()
        assert self._client is not None
        return self._client

    def get_collection(self) -> chromadb.Collection:
        self._init_client()
        assert self._collection is not None
        return self._collection

    def _connect(self) -> tuple[ClientAPI, chromadb.Collection]:
        settings = Settings(anonymized_telemetry=False)
        if self._mode == "client" and self._host:
            client = chromadb.HttpClient(
                host=self._host,
                port=self._port or 8000,
                settings=settings,
            )
        elif self._mode == "persistent" and self._path:
            client = chromadb.PersistentClient(path=self._path, settings=settings)
        else:
            client = chromadb.Client(settings=settings)

        collection = client.get_or_create_collection(
            name=self._collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        return client, collection

    def _init_client(self) -> None:
        if self._client is not None:
            return

        self._client, self._collection = self._call("connect", self._connect)
        logger.info(
            "Chroma collection '%s' ready (mode=%s)", self._collection_name, self._mode
        )

    def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a Chroma call, bounded by ``timeout`` in client mode."""
        with _backend_errors(operation):
            if self._mode != "client":
                return fn(*args, **kwargs)
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=4, thread_name_prefix="chroma-client"
                )
            future = self._executor.submit(fn, *args, **kwargs)
            try:
                return future.result(timeout=self._timeout)
            except FutureTimeoutError:
                future.cancel()
                logger.error("Chroma %s timed out after %ss", operation, self._timeout)
                raise BackendError(
                    f"chroma {operation} timed out after {self._timeout}s"
                ) from None

    @property
    def dimension(self) -> int | None:
        if self._dimension is None:
            result = self._call(
                "get", self.get_collection().get, limit=1, include=["embeddings"]
            )
            embeddings = result.get("embeddings")
            if embeddings is not None and len(embeddings) > 0:
                self._dimension = len(embeddings[0])
        return self._dimension

    def _validate_embedded(self, embedded: TextSegment | None) -> None:
        if embedded is not None and not isinstance(embedded, TextSegment):
            raise PreconditionError(
                f"{type(self).__name__} stores TextSegment payloads, "
                f"got {type(embedded).__name__}"
            )
        if embedded is not None and _HAS_EMBEDDED_KEY in embedded.metadata:
            raise PreconditionError(f"metadata key '{_HAS_EMBEDDED_KEY}' is reserved")

    def _write(self, entries: list[StoredEntry[TextSegment]]) -> None:
        # Last occurrence wins for repeated ids; Chroma rejects duplicates in one call.
        unique = list({e.id: e for e in entries}.values())
        self._call(
            "upsert",
            self.get_collection().upsert,
            ids=[e.id for e in unique],
            embeddings=[e.embedding.vector_as_list() for e in unique],
            documents=[_document(e.embedded) for e in unique],
            metadatas=[_metadata(e.embedded) for e in unique],
        )
        logger.debug("Upserted %d embeddings into '%s'", len(unique), self._collection_name)

    def _update(self, entries: list[StoredEntry[TextSegment]], keep_embedded: bool) -> None:
        if not keep_embedded:
            self._write(entries)
            return
        unique = list({e.id: e for e in entries}.values())
        self._call(
            "update",
            self.get_collection().update,
            ids=[e.id for e in unique],
            embeddings=[e.embedding.vector_as_list() for e in unique],
        )

    def _delete(self, ids: list[str]) -> None:
        self._call("delete", self.get_collection().delete, ids=ids)

    def _existing_ids(self, ids: list[str]) -> set[str]:
        result = self._call("get", self.get_collection().get, ids=ids, include=[])
        return set(result["ids"])

    def _query(
        self, reference: Embedding, max_results: int, min_score: float
    ) -> list[EmbeddingMatch[TextSegment]]:
        collection = self.get_collection()
        total = self._call("count", collection.count)
        n_results = min(max_results, total)
        if n_results == 0:
            return []

        while True:
            results = self._call(
                "query",
                collection.query,
                query_embeddings=[reference.vector_as_list()],
                n_results=n_results,
                include=["embeddings", "documents", "metadatas"],
            )
            candidates = _to_candidates(results, reference)
            scores = [match.score for _, match in candidates]
            if n_results >= total or not _ties_past_cutoff(
                scores, n_results, max_results, min_score
            ):
                break
            n_results = min(total, n_results * 2)

        return rank_matches(candidates, max_results, min_score)

    def count(self) -> int:
        return self._call("count", self.get_collection().count)

    def clear(self) -> None:
        client = self.get_client()

        def recreate() -> chromadb.Collection:
            client.delete_collection(self._collection_name)
            return client.create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )

        self._collection = self._call("clear", recreate)
        self._reset_dimension()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._client = None
        self._collection = None


@contextmanager
def _backend_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except BackendError:
        raise
    except Exception as exc:
        logger.error("Chroma %s failed: %s", operation, exc)
        raise BackendError(f"chroma {operation} failed: {exc}") from exc


def _to_candidates(
    results: dict[str, Any], reference: Embedding
) -> list[tuple[str, EmbeddingMatch[TextSegment]]]:
    ids = results["ids"][0]
    if not ids:
        return []
    embeddings = np.asarray(results["embeddings"][0], dtype=np.float64)
    documents = results["documents"][0]
    metadatas = results["metadatas"][0]
    similarities = cosine_similarities(embeddings, reference.vector)

    candidates = []
    for idx, entry_id in enumerate(ids):
        match = EmbeddingMatch(
            score=relevance_score_from_cosine(float(similarities[idx])),
            embedding_id=entry_id,
            embedding=Embedding.from_list(float(v) for v in embeddings[idx]),
            embedded=_to_segment(documents[idx], metadatas[idx]),
        )
        candidates.append((entry_id, match))
    return candidates


def _ties_past_cutoff(
    scores: list[float], requested: int, max_results: int, min_score: float
) -> bool:
    """Whether entries beyond the fetched ones may tie with the last kept score."""
    if len(scores) < requested or len(scores) < max_results:
        return False
    ranked = sorted(scores, reverse=True)
    cutoff = ranked[max_results - 1]
    return cutoff >= min_score and ranked[-1] >= cutoff


def _document(embedded: TextSegment | None) -> str:
    return embedded.text if embedded is not None else ""


def _metadata(embedded: TextSegment | None) -> dict[str, Any]:
    data: dict[str, Any] = {_HAS_EMBEDDED_KEY: embedded is not None}
    if embedded is not None:
        data.update(embedded.metadata.to_dict())
    return data


def _to_segment(document: str | None, metadata: dict[str, Any] | None) -> TextSegment | None:
    data = dict(metadata or {})
    if not data.pop(_HAS_EMBEDDED_KEY, False):
        return None
    return TextSegment(text=document or "", metadata=Metadata(data))
