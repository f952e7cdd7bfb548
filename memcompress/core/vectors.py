"""Cosine similarity helpers.

Embeddings are expected to be unit-normalized by the embedding service, but
every similarity here uses the full cosine formula so that unnormalized or
zero vectors behave.
"""
from typing import Sequence

import numpy as np


def _check_dims(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[-1] != b.shape[-1]:
        raise ValueError(
            f"Embedding dimension mismatch: {a.shape[-1]} != {b.shape[-1]}"
        )


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 if either has zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    _check_dims(a, b)
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


def cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of `query` against every row of `matrix`."""
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(len(matrix), dtype=np.float64)
    _check_dims(query, matrix)
    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, dots / denom, 0.0)
    return scores


def pairwise_cosine(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Square matrix of cosine similarities between all vectors."""
    if len(vectors) == 0:
        return np.zeros((0, 0), dtype=np.float64)
    dim = len(vectors[0])
    for v in vectors:
        if len(v) != dim:
            raise ValueError(f"Embedding dimension mismatch: {len(v)} != {dim}")
    matrix = np.vstack(vectors).astype(np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    safe = np.where(norms > 0, norms, 1.0)
    unit = matrix / safe[:, None]
    sims = unit @ unit.T
    zero = norms == 0
    sims[zero, :] = 0.0
    sims[:, zero] = 0.0
    return np.clip(sims, -1.0, 1.0)


def normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit L2 norm; zero vectors are returned unchanged."""
    vector = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def centroid(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Unit-normalized mean of `vectors`."""
    if len(vectors) == 0:
        raise ValueError("Cannot compute centroid of zero vectors")
    return normalize(np.mean(np.vstack(vectors).astype(np.float64), axis=0))
