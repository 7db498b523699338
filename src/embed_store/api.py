"""Embedding Store HTTP API service."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, model_validator

from embed_store.core.config import StoreConfig, get_store_config
from embed_store.core.errors import (
    BackendError,
    EmbeddingNotFoundError,
    PreconditionError,
    UnsupportedOperationError,
)
from embed_store.core.models import Embedding, EmbeddingMatch, TextSegment
from embed_store.core.storage.base import EmbeddingStore
from embed_store.core.storage.config import create_embedding_store
from embed_store.core.storage.memory import InMemoryEmbeddingStore
from embed_store.embedding.base import EmbeddingModel
from embed_store.logging_utils import configure_logging

logger = logging.getLogger(__name__)

_config: Optional[StoreConfig] = None
_store: Optional[EmbeddingStore[Any]] = None
_embedding_model: Optional[EmbeddingModel] = None


def get_config() -> StoreConfig:
    global _config
    if _config is None:
        _config = get_store_config()
    return _config


def get_store() -> EmbeddingStore[Any]:
    """Get or create the store instance."""
    global _store
    if _store is None:
        _store = create_embedding_store(get_config())
    return _store


def get_embedding_model() -> EmbeddingModel:
    """Get or create the embedding model used for text inputs."""
    global _embedding_model
    if _embedding_model is None:
        from embed_store.embedding.default import DefaultEmbeddingModel

        _embedding_model = DefaultEmbeddingModel()
    return _embedding_model


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _store is None:
        return
    config = get_config()
    if isinstance(_store, InMemoryEmbeddingStore) and config.persist_path:
        _store.save(config.persist_path)
    _store.close()


app = FastAPI(
    title="Embedding Store API",
    description="Store embeddings and search them by cosine similarity",
    version="0.1.0",
    lifespan=lifespan,
)


MetadataDict = Dict[str, Union[bool, int, float, str]]


class EmbeddingAddRequest(BaseModel):
    id: Optional[str] = None
    embedding: Optional[List[float]] = None
    text: Optional[str] = None
    metadata: Optional[MetadataDict] = None

    @model_validator(mode="after")
    def validate_inputs(self) -> "EmbeddingAddRequest":
        if self.embedding is None and self.text is None:
            raise ValueError("either embedding or text is required")
        if self.metadata and self.text is None:
            raise ValueError("metadata requires text")
        return self


class EmbeddingUpdateRequest(BaseModel):
    embedding: Optional[List[float]] = None
    text: Optional[str] = None
    metadata: Optional[MetadataDict] = None

    @model_validator(mode="after")
    def validate_inputs(self) -> "EmbeddingUpdateRequest":
        if self.embedding is None and self.text is None:
            raise ValueError("either embedding or text is required")
        if self.metadata and self.text is None:
            raise ValueError("metadata requires text")
        return self


class EmbeddingSearchRequest(BaseModel):
    embedding: Optional[List[float]] = None
    text: Optional[str] = None
    max_results: int = 5
    min_score: float = 0.0

    @model_validator(mode="after")
    def validate_inputs(self) -> "EmbeddingSearchRequest":
        if self.embedding is None and self.text is None:
            raise ValueError("either embedding or text is required")
        return self


class EmbeddingAddResponse(BaseModel):
    id: str


class EmbeddingMatchResponse(BaseModel):
    embedding_id: str
    score: float
    embedding: List[float]
    text: Optional[str] = None
    metadata: Optional[MetadataDict] = None

    @classmethod
    def from_match(cls, match: EmbeddingMatch[Any]) -> "EmbeddingMatchResponse":
        segment = match.embedded if isinstance(match.embedded, TextSegment) else None
        return cls(
            embedding_id=match.embedding_id,
            score=match.score,
            embedding=match.embedding.vector_as_list(),
            text=segment.text if segment else None,
            metadata=segment.metadata.to_dict() if segment else None,
        )


class StoreStatsResponse(BaseModel):
    backend: str
    count: int
    dimension: Optional[int] = None


def _resolve_embedding(
    embedding: Optional[List[float]], text: Optional[str], model: EmbeddingModel
) -> Embedding:
    if embedding is not None:
        return Embedding.from_list(embedding)
    assert text is not None
    return model.embed(text)


def _segment(text: Optional[str], metadata: Optional[MetadataDict]) -> Optional[TextSegment]:
    if text is None:
        return None
    return TextSegment.from_text(text, metadata)


@app.exception_handler(PreconditionError)
async def precondition_error_handler(request: Request, exc: PreconditionError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(EmbeddingNotFoundError)
async def not_found_handler(request: Request, exc: EmbeddingNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(UnsupportedOperationError)
async def unsupported_handler(
    request: Request, exc: UnsupportedOperationError
) -> JSONResponse:
    return JSONResponse(status_code=501, content={"detail": str(exc)})


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    logger.error("Backend failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.post(
    "/api/embeddings",
    status_code=status.HTTP_201_CREATED,
    response_model=EmbeddingAddResponse,
)
def add_embedding(
    request: EmbeddingAddRequest,
    store: EmbeddingStore[Any] = Depends(get_store),
    model: EmbeddingModel = Depends(get_embedding_model),
) -> EmbeddingAddResponse:
    """Store an embedding, embedding ``text`` first when no vector is given."""
    embedding = _resolve_embedding(request.embedding, request.text, model)
    segment = _segment(request.text, request.metadata)
    if request.id is not None:
        store.add_with_id(request.id, embedding, segment)
        return EmbeddingAddResponse(id=request.id)
    return EmbeddingAddResponse(id=store.add(embedding, segment))


@app.post("/api/embeddings/search", response_model=List[EmbeddingMatchResponse])
def search_embeddings(
    request: EmbeddingSearchRequest,
    store: EmbeddingStore[Any] = Depends(get_store),
    model: EmbeddingModel = Depends(get_embedding_model),
) -> List[EmbeddingMatchResponse]:
    """Find the stored embeddings most similar to the query."""
    reference = _resolve_embedding(request.embedding, request.text, model)
    matches = store.find_relevant(reference, request.max_results, request.min_score)
    return [EmbeddingMatchResponse.from_match(m) for m in matches]


@app.put("/api/embeddings/{embedding_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_embedding(
    embedding_id: str,
    request: EmbeddingUpdateRequest,
    store: EmbeddingStore[Any] = Depends(get_store),
    model: EmbeddingModel = Depends(get_embedding_model),
) -> None:
    """Replace an embedding; its payload is kept unless ``text`` is given."""
    embedding = _resolve_embedding(request.embedding, request.text, model)
    store.update(embedding_id, embedding, _segment(request.text, request.metadata))


@app.delete("/api/embeddings/{embedding_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_embedding(
    embedding_id: str, store: EmbeddingStore[Any] = Depends(get_store)
) -> None:
    store.delete(embedding_id)


@app.get("/api/embeddings/stats", response_model=StoreStatsResponse)
def get_store_stats(
    store: EmbeddingStore[Any] = Depends(get_store),
) -> StoreStatsResponse:
    return StoreStatsResponse(
        backend=type(store).__name__, count=store.count(), dimension=store.dimension
    )


@app.get("/health")
def health_check() -> Dict[str, str]:
    return {"status": "healthy", "service": "embed-store-api"}


if __name__ == "__main__":
    import uvicorn

    configure_logging(get_config().log_level)
    host = os.getenv("APP_HOST", "0.0.0.0")
    port = int(os.getenv("APP_PORT", "8080"))

    uvicorn.run("embed_store.api:app", host=host, port=port)
