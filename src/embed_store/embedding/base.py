"""Base embedding model interface."""

from abc import ABC, abstractmethod

from embed_store.core.models import Embedding, TextSegment


class EmbeddingModel(ABC):
    """Abstract base class for models turning text into embeddings."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of the embedding."""
        ...

    @abstractmethod
    def embed(self, text: str) -> Embedding:
        """Embed a single text string."""
        ...

    def embed_batch(self, texts: list[str]) -> list[Embedding]:
        """Embed multiple texts. Default implementation calls embed() for each."""
        return [self.embed(text) for text in texts]

    def embed_segment(self, segment: TextSegment) -> Embedding:
        return self.embed(segment.text)
