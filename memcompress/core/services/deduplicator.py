"""Deduplicator - collapses near-identical chunks by embedding similarity."""

import logging
from dataclasses import dataclass

import numpy as np

from ..models.document import Chunk
from ..vectors import pairwise_cosine

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_THRESHOLD = 0.92


@dataclass
class DedupResult:
    """Surviving chunks with their embeddings."""
    chunks: list[Chunk]
    embeddings: list[np.ndarray]
    removed_count: int


class _UnionFind:
    def __init__(self, n: int):
        self._parent = list(range(n))

    def find(self, x: int) -> int:
        while self._parent[x] != x:
            self._parent[x] = self._parent[self._parent[x]]
            x = self._parent[x]
        return x

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self._parent[ra] = rb


def dedupe(
    chunks: list[Chunk],
    embeddings: list[np.ndarray],
    threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> DedupResult:
    """Keep one chunk per group of near-duplicates.

    Pairs with cosine similarity >= threshold are unioned. Each group keeps
    its longest text (first index on ties). Survivors keep input order.

    Args:
        chunks: Chunks to deduplicate.
        embeddings: One embedding per chunk.
        threshold: Inclusive similarity threshold.

    Returns:
        Surviving chunks, their embeddings and the number removed.
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
        )

    n = len(chunks)
    if n == 0:
        return DedupResult(chunks=[], embeddings=[], removed_count=0)

    sims = pairwise_cosine(embeddings)
    groups = _UnionFind(n)

    for i in range(n):
        for j in range(i + 1, n):
            if groups.find(i) == groups.find(j):
                continue
            if sims[i, j] >= threshold:
                groups.union(i, j)

    best: dict[int, int] = {}
    for i in range(n):
        root = groups.find(i)
        if root not in best or len(chunks[i].text) > len(chunks[best[root]].text):
            best[root] = i

    keep = sorted(best.values())
    removed = n - len(keep)
    if removed:
        logger.info(f"Dedup: removed {removed}/{n} near-duplicate chunks")

    return DedupResult(
        chunks=[chunks[i] for i in keep],
        embeddings=[embeddings[i] for i in keep],
        removed_count=removed,
    )
