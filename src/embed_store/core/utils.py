"""Utility functions for embedding store operations.

This module contains reusable helpers for id generation, similarity scoring
and argument validation that don't depend on a specific backend.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Sequence
from typing import Any

import numpy as np

from embed_store.core.errors import DimensionMismatchError, PreconditionError

# Accumulated float64 rounding in dot / (|a| * |b|). Only similarities this
# close to +-1 are treated as exactly parallel or opposite.
SIMILARITY_ROUNDING = 1e-12


def generate_id() -> str:
    """Generate a fresh globally-unique embedding id.

    Returns:
        Random UUID4 string

    Example:
        >>> len(generate_id())
        36
    """
    return str(uuid.uuid4())


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors of the same length.

    A zero-magnitude vector has no direction, its similarity to anything is 0.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Cosine similarity in [-1, 1]

    Raises:
        DimensionMismatchError: If the vectors differ in length

    Example:
        >>> cosine_similarity([1.0, 0.0], [0.0, 1.0])
        0.0
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(_round_parallel(np.asarray(np.dot(va, vb) / denom)))


def cosine_similarities(matrix: np.ndarray, query: Sequence[float]) -> np.ndarray:
    """Cosine similarity of every row of ``matrix`` against ``query``.

    Rows with zero magnitude get similarity 0.

    Args:
        matrix: 2-D array with one stored vector per row
        query: Reference vector with ``matrix.shape[1]`` components

    Returns:
        1-D array of similarities in [-1, 1], aligned with the rows
    """
    q = np.asarray(query, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0.0, dots / np.where(norms > 0.0, norms, 1.0), 0.0)
    return _round_parallel(sims)


def _round_parallel(sims: np.ndarray) -> np.ndarray:
    sims = np.where(sims >= 1.0 - SIMILARITY_ROUNDING, 1.0, sims)
    sims = np.where(sims <= -1.0 + SIMILARITY_ROUNDING, -1.0, sims)
    return np.clip(sims, -1.0, 1.0)


def relevance_score_from_cosine(similarity: float) -> float:
    """Map cosine similarity to a relevance score.

    Formula:
        score = (similarity + 1) / 2

    No tolerance is applied here: only a similarity of exactly 1 scores 1.0,
    so ``min_score=1.0`` keeps exact-direction matches only.

    Args:
        similarity: Cosine similarity in [-1, 1]

    Returns:
        Relevance score in [0, 1]

    Example:
        >>> relevance_score_from_cosine(1.0)  # Same direction
        1.0
        >>> relevance_score_from_cosine(0.0)  # Orthogonal
        0.5
        >>> relevance_score_from_cosine(-1.0)  # Opposite
        0.0
    """
    return _clip((similarity + 1.0) / 2.0, 0.0, 1.0)


def ensure_not_blank(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PreconditionError(f"{name} must be a non-blank string")
    return value


def ensure_not_none(value: Any, name: str) -> Any:
    if value is None:
        raise PreconditionError(f"{name} must not be None")
    return value


def ensure_same_length(**sequences: Sequence[Any] | None) -> int:
    """Check that all given batch arguments have the same length.

    None arguments are skipped.

    Returns:
        The common length

    Raises:
        PreconditionError: If any argument is not a sequence or lengths differ
    """
    lengths: dict[str, int] = {}
    for name, seq in sequences.items():
        if seq is None:
            continue
        if isinstance(seq, (str, bytes)) or not hasattr(seq, "__len__"):
            raise PreconditionError(f"{name} must be a list")
        lengths[name] = len(seq)
    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
        raise PreconditionError(f"batch arguments must have equal length ({detail})")
    return next(iter(lengths.values()), 0)


def validate_min_score(min_score: float) -> float:
    """Validate that min_score is a number in [0, 1].

    Raises:
        PreconditionError: If min_score is NaN or out of range
    """
    try:
        value = float(min_score)
    except (TypeError, ValueError) as exc:
        raise PreconditionError("min_score must be a number") from exc
    if math.isnan(value) or value < 0.0 or value > 1.0:
        raise PreconditionError(f"min_score must be in [0, 1], got {min_score}")
    return value


def check_dimension(expected: int | None, actual: int) -> None:
    if expected is not None and expected != actual:
        raise DimensionMismatchError(expected, actual)


def _clip(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
