"""In-memory embedding store implementation.

Reference engine: exact brute-force cosine search over all live entries.
"""

import json
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from embed_store.core.errors import PreconditionError
from embed_store.core.models import Embedded, Embedding, EmbeddingMatch, TextSegment
from embed_store.core.storage.base import (
    Capability,
    EmbeddingStore,
    MissingIdPolicy,
    StoredEntry,
    rank_matches,
)
from embed_store.core.utils import cosine_similarities, relevance_score_from_cosine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Row:
    entry: StoredEntry[Any]
    sequence: int


class InMemoryEmbeddingStore(EmbeddingStore[Embedded]):
    """Embedding store kept in a Python dict.

    Thread-safe: every entry is an immutable object swapped under an RLock,
    so queries never see half of an update. Ties in score are broken by
    insertion order; an overwrite keeps the entry's original position.

    Updates of unknown ids follow ``missing_id_policy`` (default FAIL).
    """

    capabilities = frozenset(
        {Capability.ADD_WITH_ID, Capability.UPDATE, Capability.DELETE, Capability.PAYLOAD}
    )

    def __init__(
        self,
        dimension: int | None = None,
        missing_id_policy: MissingIdPolicy | str = MissingIdPolicy.FAIL,
    ) -> None:
        super().__init__(dimension=dimension)
        self.missing_id_policy = MissingIdPolicy(missing_id_policy)
        self._lock = threading.RLock()
        self._rows: dict[str, _Row] = {}
        self._sequence = 0

    # Public mutators hold the lock across validation and write so the
    # missing-id check of update_all and the write happen atomically.

    def add(self, embedding: Embedding, embedded: Embedded | None = None) -> str:
        with self._lock:
            return super().add(embedding, embedded)

    def add_with_id(
        self, embedding_id: str, embedding: Embedding, embedded: Embedded | None = None
    ) -> None:
        with self._lock:
            super().add_with_id(embedding_id, embedding, embedded)

    def add_all(
        self,
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> list[str]:
        with self._lock:
            return super().add_all(embeddings, embedded)

    def add_all_with_ids(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> list[str]:
        with self._lock:
            return super().add_all_with_ids(ids, embeddings, embedded)

    def update_all(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Embedding],
        embedded: Sequence[Embedded] | None = None,
    ) -> None:
        with self._lock:
            super().update_all(ids, embeddings, embedded)

    def find_relevant(
        self,
        reference_embedding: Embedding,
        max_results: int,
        min_score: float = 0.0,
    ) -> list[EmbeddingMatch[Embedded]]:
        # dimension check and scan must see the same rows
        with self._lock:
            return super().find_relevant(reference_embedding, max_results, min_score)

    def _write(self, entries: list[StoredEntry[Embedded]]) -> None:
        with self._lock:
            for entry in entries:
                existing = self._rows.get(entry.id)
                if existing is not None:
                    sequence = existing.sequence
                else:
                    self._sequence += 1
                    sequence = self._sequence
                self._rows[entry.id] = _Row(entry=entry, sequence=sequence)
        logger.debug("Stored %d embeddings", len(entries))

    def _update(self, entries: list[StoredEntry[Embedded]], keep_embedded: bool) -> None:
        with self._lock:
            if keep_embedded:
                entries = [
                    StoredEntry(
                        id=e.id,
                        embedding=e.embedding,
                        embedded=self._rows[e.id].entry.embedded if e.id in self._rows else None,
                    )
                    for e in entries
                ]
            self._write(entries)

    def _delete(self, ids: list[str]) -> None:
        with self._lock:
            removed = sum(1 for i in ids if self._rows.pop(i, None) is not None)
        logger.debug("Deleted %d of %d requested embeddings", removed, len(ids))

    def _existing_ids(self, ids: list[str]) -> set[str]:
        with self._lock:
            return {i for i in ids if i in self._rows}

    def _query(
        self, reference: Embedding, max_results: int, min_score: float
    ) -> list[EmbeddingMatch[Embedded]]:
        with self._lock:
            rows = list(self._rows.values())
        if not rows:
            return []

        matrix = np.array([row.entry.embedding.vector for row in rows], dtype=np.float64)
        similarities = cosine_similarities(matrix, reference.vector)
        candidates = []
        for row, similarity in zip(rows, similarities):
            entry = row.entry
            candidates.append(
                (
                    row.sequence,
                    EmbeddingMatch(
                        score=relevance_score_from_cosine(float(similarity)),
                        embedding_id=entry.id,
                        embedding=entry.embedding,
                        embedded=entry.embedded,
                    ),
                )
            )
        return rank_matches(candidates, max_results, min_score)

    def get(self, embedding_id: str) -> StoredEntry[Embedded] | None:
        """Return the stored entry for ``embedding_id``, or None."""
        with self._lock:
            row = self._rows.get(embedding_id)
            return row.entry if row else None

    def count(self) -> int:
        with self._lock:
            return len(self._rows)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
            self._sequence = 0
            self._reset_dimension()

    # ---------------------------------------------------------- persistence

    def to_dict(self) -> dict[str, Any]:
        """Serialize entries in insertion order.

        Payloads must be TextSegment instances or JSON-serializable values.
        """
        with self._lock:
            rows = sorted(self._rows.values(), key=lambda r: r.sequence)
            dimension = self._dimension
        return {
            "dimension": dimension,
            "missing_id_policy": self.missing_id_policy.value,
            "entries": [
                {
                    "id": row.entry.id,
                    "embedding": row.entry.embedding.vector_as_list(),
                    "embedded": _encode_payload(row.entry.embedded),
                }
                for row in rows
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryEmbeddingStore[Any]":
        store: InMemoryEmbeddingStore[Any] = cls(
            dimension=data.get("dimension"),
            missing_id_policy=data.get("missing_id_policy", MissingIdPolicy.FAIL),
        )
        entries = data.get("entries", [])
        if entries:
            store.add_all_with_ids(
                [e["id"] for e in entries],
                [Embedding.from_list(e["embedding"]) for e in entries],
                [_decode_payload(e.get("embedded")) for e in entries],
            )
        return store

    @classmethod
    def from_json(cls, json_str: str) -> "InMemoryEmbeddingStore[Any]":
        return cls.from_dict(json.loads(json_str))

    def save(self, path: str | Path) -> None:
        """Write the store to ``path`` as JSON."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(), encoding="utf-8")
        logger.info("Saved %d embeddings to %s", self.count(), target)

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryEmbeddingStore[Any]":
        """Read a store previously written with ``save``."""
        source = Path(path)
        store = cls.from_json(source.read_text(encoding="utf-8"))
        logger.info("Loaded %d embeddings from %s", store.count(), source)
        return store


def _encode_payload(embedded: Any) -> dict[str, Any] | None:
    if embedded is None:
        return None
    if isinstance(embedded, TextSegment):
        return {"type": "text_segment", "value": embedded.to_dict()}
    try:
        json.dumps(embedded)
    except (TypeError, ValueError) as exc:
        raise PreconditionError(
            f"payload of type {type(embedded).__name__} is not serializable"
        ) from exc
    return {"type": "json", "value": embedded}


def _decode_payload(data: dict[str, Any] | None) -> Any:
    if data is None:
        return None
    if data.get("type") == "text_segment":
        return TextSegment.from_dict(data["value"])
    return data.get("value")
