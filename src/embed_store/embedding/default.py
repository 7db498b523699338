"""Sentence-transformers embedding model."""

from functools import cached_property

from embed_store.core.errors import PreconditionError
from embed_store.core.models import Embedding
from embed_store.embedding.base import EmbeddingModel


class DefaultEmbeddingModel(EmbeddingModel):
    """
    Embedding model backed by sentence-transformers.

    Defaults to all-MiniLM-L6-v2 (384 dimensions). The weights are loaded
    on first use, so constructing the model is cheap.

    Args:
        model_name: Any model name or path accepted by SentenceTransformer
        normalize: Return unit-length vectors
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", normalize: bool = False) -> None:
        self._model_name = model_name
        self._normalize = normalize

    @cached_property
    def _encoder(self):
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(self._model_name)

    @property
    def dimension(self) -> int:
        return self._encoder.get_sentence_embedding_dimension()

    def embed(self, text: str) -> Embedding:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[Embedding]:
        if not texts:
            return []
        if any(text is None for text in texts):
            raise PreconditionError("text must not be None")
        vectors = self._encoder.encode(
            texts, convert_to_numpy=True, normalize_embeddings=self._normalize
        )
        return [Embedding.from_list(v) for v in vectors.tolist()]
