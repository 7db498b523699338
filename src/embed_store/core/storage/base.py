"""Embedding store interface shared by all backends.

The public methods validate arguments, generate ids and enforce the update
policy; concrete backends implement the protected ``_write``, ``_update``,
``_delete``, ``_existing_ids`` and ``_query`` hooks. A hook a backend does
not override raises UnsupportedOperationError.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Generic

from embed_store.core.errors import (
    EmbeddingNotFoundError,
    PreconditionError,
    UnsupportedOperationError,
)
from embed_store.core.models import Embedded, Embedding, EmbeddingMatch, as_embedding
from embed_store.core.utils import (
    check_dimension,
    ensure_not_blank,
    ensure_not_none,
    ensure_same_length,
    generate_id,
    validate_min_score,
)

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Optional operations a backend may or may not implement."""

    ADD_WITH_ID = "add_with_id"
    UPDATE = "update"
    DELETE = "delete"
    PAYLOAD = "payload"


class MissingIdPolicy(str, Enum):
    """What ``update`` does with an id that is not stored.

    - FAIL: raise EmbeddingNotFoundError, nothing is written
    - UPSERT: insert the entry
    - IGNORE: skip the entry silently
    """

    FAIL = "fail"
    UPSERT = "upsert"
    IGNORE = "ignore"


@dataclass(frozen=True)
class StoredEntry(Generic[Embedded]):
    """One (id, embedding, payload) triple as handed to a backend."""

    id: str
    embedding: Embedding
    embedded: Embedded | None = None


def rank_matches(
    candidates: Iterable[tuple[Any, EmbeddingMatch[Embedded]]],
    max_results: int,
    min_score: float,
) -> list[EmbeddingMatch[Embedded]]:
    """Filter, sort and truncate scored candidates.

    Args:
        candidates: Pairs of (tie-break key, match); the key orders matches
            with equal scores and must be unique per entry
        max_results: Maximum number of matches to return
        min_score: Minimum relevance score (inclusive)

    Returns:
        Matches with ``score >= min_score``, best first
    """
    kept = [(key, m) for key, m in candidates if m.score >= min_score]
    kept.sort(key=lambda pair: (-pair[1].score, pair[0]))
    return [m for _, m in kept[:max_results]]


class EmbeddingStore(ABC, Generic[Embedded]):
    """Abstract store of embeddings with optional payloads.

    Subclasses declare what they implement in ``capabilities`` and their
    behaviour for updates of unknown ids in ``missing_id_policy``.
    """

    capabilities: ClassVar[frozenset[Capability]] = frozenset()
    missing_id_policy: MissingIdPolicy = MissingIdPolicy.FAIL

    def __init__(self, dimension: int | None = None) -> None:
        if dimension is not None and dimension <= 0:
            raise PreconditionError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension
        self._configured_dimension = dimension

    @property
    def dimension(self) -> int | None:
        """Dimension of stored embeddings, None until known."""
        return self._dimension

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _require(self, capability: Capability, operation: str) -> None:
        if not self.supports(capability):
            raise UnsupportedOperationError(operation, type(self).__name__)

    # ------------------------------------------------------------------ add

    def add(self, embedding: Embedding, embedded: Embedded | None = None) -> str:
        """Add an embedding (and optional payload) under a generated id.

        Returns:
            The generated id
        """
        if embedded is not None:
            self._require(Capability.PAYLOAD, "add with embedded")
        entries = self._prepare([generate_id()], [embedding], _payloads(embedded, 1))
        self._write(entries)
        self._remember_dimension(entries)
        return entries[0].id

    def add_with_id(
        self, embedding_id: str, embedding: Embedding, embedded: Embedded | None = None
    ) -> None:
        """Insert or overwrite the entry stored under ``embedding_id``."""
        self._require(Capability.ADD_WITH_ID, "add with id")
        if embedded is not None:
            self._require(Capability.PAYLOAD, "add with embedded")
        entries = self._prepare([embedding_id], [embedding], _payloads(embedded, 1))
        self._write(entries)
        self._remember_dimension(entries)

    def add_all(
        self,
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> list[str]:
        """Add a batch under generated ids.

        Returns:
            Generated ids, positionally aligned with ``embeddings``
        """
        if embedded is not None:
            self._require(Capability.PAYLOAD, "add_all with embedded")
        ensure_not_none(embeddings, "embeddings")
        size = ensure_same_length(embeddings=embeddings, embedded=embedded)
        ids = [generate_id() for _ in range(size)]
        entries = self._prepare(ids, embeddings, embedded)
        if entries:
            self._write(entries)
            self._remember_dimension(entries)
        return ids

    def add_all_with_ids(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> list[str]:
        """Insert or overwrite a batch under caller-supplied ids.

        If ``ids`` repeats an id, the last occurrence wins.
        """
        self._require(Capability.ADD_WITH_ID, "add_all with ids")
        if embedded is not None:
            self._require(Capability.PAYLOAD, "add_all with embedded")
        ensure_not_none(ids, "ids")
        ensure_not_none(embeddings, "embeddings")
        ensure_same_length(ids=ids, embeddings=embeddings, embedded=embedded)
        entries = self._prepare(ids, embeddings, embedded)
        if entries:
            self._write(entries)
            self._remember_dimension(entries)
        return [entry.id for entry in entries]

    # --------------------------------------------------------------- update

    def update(
        self, embedding_id: str, embedding: Embedding, embedded: Embedded | None = None
    ) -> None:
        """Replace the embedding (and payload, if given) stored under ``embedding_id``.

        With ``embedded=None`` the stored payload is kept. Unknown ids are
        handled according to ``missing_id_policy``.
        """
        self.update_all(
            [embedding_id], [embedding], None if embedded is None else [embedded]
        )

    def update_all(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> None:
        """Batch form of ``update``. All ids are checked before anything is written."""
        self._require(Capability.UPDATE, "update")
        if embedded is not None:
            self._require(Capability.PAYLOAD, "update with embedded")
        ensure_not_none(ids, "ids")
        ensure_not_none(embeddings, "embeddings")
        ensure_same_length(ids=ids, embeddings=embeddings, embedded=embedded)
        entries = self._prepare(ids, embeddings, embedded)
        if not entries:
            return

        existing = self._existing_ids([e.id for e in entries])
        missing = [e.id for e in entries if e.id not in existing]
        if missing:
            if self.missing_id_policy is MissingIdPolicy.FAIL:
                raise EmbeddingNotFoundError(missing[0])
            if self.missing_id_policy is MissingIdPolicy.IGNORE:
                logger.debug("Skipping update of %d unknown ids", len(missing))
                entries = [e for e in entries if e.id in existing]
                if not entries:
                    return

        self._update(entries, keep_embedded=embedded is None)
        self._remember_dimension(entries)

    # --------------------------------------------------------------- delete

    def delete(self, embedding_id: str) -> None:
        """Remove the entry stored under ``embedding_id``. Unknown ids are ignored."""
        self.delete_all([embedding_id])

    def delete_all(self, ids: Sequence[str]) -> None:
        """Remove all given entries. Unknown ids are ignored."""
        self._require(Capability.DELETE, "delete")
        ensure_not_none(ids, "ids")
        ensure_same_length(ids=ids)
        for entry_id in ids:
            ensure_not_blank(entry_id, "id")
        if ids:
            self._delete(list(dict.fromkeys(ids)))

    # ---------------------------------------------------------------- query

    def find_relevant(
        self,
        reference_embedding: Embedding,
        max_results: int,
        min_score: float = 0.0,
    ) -> list[EmbeddingMatch[Embedded]]:
        """Find the stored embeddings closest to ``reference_embedding``.

        Args:
            reference_embedding: Embedding to compare against
            max_results: Maximum number of matches; ``<= 0`` returns []
            min_score: Minimum relevance score in [0, 1] (inclusive)

        Returns:
            Matches sorted by descending score. The score is
            ``(cosine_similarity + 1) / 2``.

        Raises:
            PreconditionError: If min_score is out of range
            DimensionMismatchError: If the reference dimension differs from
                the store dimension
        """
        reference = as_embedding(reference_embedding)
        min_score = validate_min_score(min_score)
        check_dimension(self.dimension, reference.dimension())
        if max_results <= 0:
            return []
        return self._query(reference, max_results, min_score)

    # ------------------------------------------------------------ lifecycle

    @abstractmethod
    def count(self) -> int:
        """Number of live entries."""
        ...

    def clear(self) -> None:
        """Remove all entries."""
        raise UnsupportedOperationError("clear", type(self).__name__)

    def await_until_persisted(self, timeout: float | None = None) -> None:
        """Block until earlier mutations are visible to queries.

        Backends with synchronous consistency treat this as a no-op.
        """
        return None

    def close(self) -> None:
        """Clean up resources."""
        return None

    def __enter__(self) -> "EmbeddingStore[Embedded]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
        return None

    # ---------------------------------------------------------------- hooks

    def _write(self, entries: list[StoredEntry[Embedded]]) -> None:
        """Insert or overwrite entries."""
        raise UnsupportedOperationError("add", type(self).__name__)

    def _update(self, entries: list[StoredEntry[Embedded]], keep_embedded: bool) -> None:
        """Overwrite entries; with ``keep_embedded`` the stored payload survives."""
        raise UnsupportedOperationError("update", type(self).__name__)

    def _delete(self, ids: list[str]) -> None:
        raise UnsupportedOperationError("delete", type(self).__name__)

    def _existing_ids(self, ids: list[str]) -> set[str]:
        """Subset of ``ids`` currently stored."""
        raise UnsupportedOperationError("update", type(self).__name__)

    @abstractmethod
    def _query(
        self, reference: Embedding, max_results: int, min_score: float
    ) -> list[EmbeddingMatch[Embedded]]:
        """Return at most ``max_results`` matches with score >= ``min_score``, best first."""
        ...

    # -------------------------------------------------------------- helpers

    def _prepare(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Any],
        embedded: Sequence[Embedded] | None,
    ) -> list[StoredEntry[Embedded]]:
        """Validate a batch and build entries. Raises before any write."""
        entries: list[StoredEntry[Embedded]] = []
        dimension = self.dimension
        for i, (entry_id, raw) in enumerate(zip(ids, embeddings)):
            ensure_not_blank(entry_id, "id")
            embedding = as_embedding(raw)
            if dimension is None:
                dimension = embedding.dimension()
            check_dimension(dimension, embedding.dimension())
            payload = embedded[i] if embedded is not None else None
            self._validate_embedded(payload)
            entries.append(StoredEntry(id=entry_id, embedding=embedding, embedded=payload))
        return entries

    def _validate_embedded(self, embedded: Embedded | None) -> None:
        """Reject payloads the backend cannot store. Accepts anything by default."""
        return None

    def _reset_dimension(self) -> None:
        self._dimension = self._configured_dimension

    def _remember_dimension(self, entries: list[StoredEntry[Embedded]]) -> None:
        if self._dimension is None and entries:
            self._dimension = entries[0].embedding.dimension()


def _payloads(embedded: Any, size: int) -> list[Any] | None:
    return None if embedded is None else [embedded] * size
