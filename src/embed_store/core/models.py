"""Data models for embeddings, payloads and query results."""

import json
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from embed_store.core.errors import PreconditionError

Embedded = TypeVar("Embedded")

MetadataValue = str | int | float | bool


@dataclass(frozen=True)
class Embedding:
    """Immutable fixed-length vector of floats.

    Attributes:
        vector: Components of the embedding, coerced to a tuple of floats

    Example:
        >>> Embedding([1, 0, 0]).dimension()
        3
    """

    vector: tuple[float, ...]

    def __post_init__(self) -> None:
        try:
            values = tuple(float(v) for v in self.vector)
        except (TypeError, ValueError) as exc:
            raise PreconditionError(f"embedding values must be numbers: {exc}") from exc
        if not values:
            raise PreconditionError("embedding must not be empty")
        if not all(math.isfinite(v) for v in values):
            raise PreconditionError("embedding values must be finite")
        object.__setattr__(self, "vector", values)

    @classmethod
    def from_list(cls, values: Iterable[float]) -> "Embedding":
        return cls(tuple(values))

    def dimension(self) -> int:
        return len(self.vector)

    def vector_as_list(self) -> list[float]:
        return list(self.vector)

    def magnitude(self) -> float:
        return math.sqrt(sum(v * v for v in self.vector))

    def normalize(self) -> "Embedding":
        """Return a unit-length copy. Zero vectors are returned unchanged."""
        norm = self.magnitude()
        if norm == 0.0:
            return self
        return Embedding(tuple(v / norm for v in self.vector))

    def __len__(self) -> int:
        return len(self.vector)

    def __iter__(self) -> Iterator[float]:
        return iter(self.vector)


def as_embedding(value: "Embedding | Iterable[float]") -> Embedding:
    """Coerce a plain sequence of numbers into an Embedding."""
    if isinstance(value, Embedding):
        return value
    if value is None:
        raise PreconditionError("embedding must not be None")
    return Embedding.from_list(value)


class Metadata(Mapping[str, MetadataValue]):
    """Read-only string-keyed metadata attached to a text segment.

    Values are restricted to flat scalars so every backend can store them.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        entries: dict[str, MetadataValue] = {}
        for key, value in (data or {}).items():
            if not isinstance(key, str) or not key.strip():
                raise PreconditionError("metadata keys must be non-blank strings")
            if not isinstance(value, (str, int, float, bool)):
                raise PreconditionError(
                    f"metadata value for '{key}' must be str, int, float or bool, "
                    f"got {type(value).__name__}"
                )
            entries[key] = value
        self._data = entries

    @classmethod
    def from_pair(cls, key: str, value: MetadataValue) -> "Metadata":
        return cls({key: value})

    def with_entry(self, key: str, value: MetadataValue) -> "Metadata":
        """Return a copy with one entry added or replaced."""
        merged = dict(self._data)
        merged[key] = value
        return Metadata(merged)

    def merge(self, other: Mapping[str, MetadataValue]) -> "Metadata":
        merged = dict(self._data)
        merged.update(other)
        return Metadata(merged)

    def to_dict(self) -> dict[str, MetadataValue]:
        return dict(self._data)

    def __getitem__(self, key: str) -> MetadataValue:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Metadata({self._data!r})"


@dataclass(frozen=True)
class TextSegment:
    """A piece of text and its metadata, the usual payload of an embedding."""

    text: str
    metadata: Metadata = field(default_factory=Metadata)

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise PreconditionError("text must be a string")
        if not isinstance(self.metadata, Metadata):
            object.__setattr__(self, "metadata", Metadata(self.metadata))

    @classmethod
    def from_text(
        cls, text: str, metadata: Mapping[str, MetadataValue] | None = None
    ) -> "TextSegment":
        return cls(text=text, metadata=Metadata(metadata))

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "metadata": self.metadata.to_dict()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TextSegment":
        return cls(text=data["text"], metadata=Metadata(data.get("metadata")))

    @classmethod
    def from_json(cls, json_str: str) -> "TextSegment":
        return cls.from_dict(json.loads(json_str))


@dataclass(frozen=True)
class EmbeddingMatch(Generic[Embedded]):
    """A single result of a similarity query.

    Attributes:
        score: Relevance score in [0, 1], 1 meaning identical direction
        embedding_id: Identifier of the matched entry
        embedding: Stored embedding of the matched entry
        embedded: Stored payload, or None if the entry has none
    """

    score: float
    embedding_id: str
    embedding: Embedding
    embedded: Embedded | None = None

    def to_dict(self) -> dict[str, Any]:
        embedded: Any = self.embedded
        if isinstance(embedded, TextSegment):
            embedded = embedded.to_dict()
        return {
            "score": self.score,
            "embedding_id": self.embedding_id,
            "embedding": self.embedding.vector_as_list(),
            "embedded": embedded,
        }
