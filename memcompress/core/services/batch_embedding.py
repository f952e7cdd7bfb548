"""Batched embedding with validation at the service boundary."""

import logging
from typing import Any, Callable, Optional, Sequence

import numpy as np

from ..protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 16


def coerce_embedding(raw: Any) -> Optional[np.ndarray]:
    """Turn an embedding service payload into a finite 1-D float vector.

    Anything that is not a non-empty, finite, 1-D numeric vector becomes None.
    """
    if raw is None:
        return None
    try:
        vector = np.asarray(raw, dtype=np.float32)
    except (TypeError, ValueError):
        return None
    if vector.ndim != 1 or vector.size == 0 or not np.all(np.isfinite(vector)):
        return None
    return vector


async def embed_one(embedder: EmbedderProtocol, text: str) -> Optional[np.ndarray]:
    """Embed a single text; failures become None."""
    try:
        raw = await embedder.embed(text)
    except Exception as e:
        logger.warning(f"Embedding failed: {e}")
        return None
    return coerce_embedding(raw)


async def embed_in_batches(
    embedder: EmbedderProtocol,
    texts: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_batch: Optional[Callable[[int, int], None]] = None,
) -> list[Optional[np.ndarray]]:
    """Embed texts in fixed-size batches.

    A batch that raises counts as all-None for its items. Vectors whose
    dimensionality differs from the first valid vector raise ValueError.

    Args:
        embedder: Embedding service.
        texts: Texts to embed.
        batch_size: Texts per embedding call.
        on_batch: Called with (done, total) after each batch.

    Returns:
        One vector or None per input text, in input order.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    results: list[Optional[np.ndarray]] = []
    dim: Optional[int] = None
    total = len(texts)

    for start in range(0, total, batch_size):
        batch = list(texts[start : start + batch_size])
        try:
            raw_batch = await embedder.embed_batch(batch)
        except Exception as e:
            logger.warning(f"Embedding batch {start}-{start + len(batch)} failed: {e}")
            raw_batch = [None] * len(batch)

        if len(raw_batch) != len(batch):
            raise ValueError(
                f"Embedder returned {len(raw_batch)} vectors for {len(batch)} texts"
            )

        for raw in raw_batch:
            vector = coerce_embedding(raw)
            if vector is not None:
                if dim is None:
                    dim = vector.size
                elif vector.size != dim:
                    raise ValueError(
                        f"Embedding dimension mismatch: {vector.size} != {dim}"
                    )
            results.append(vector)

        if on_batch:
            on_batch(len(results), total)

    failed = sum(1 for r in results if r is None)
    if failed:
        logger.warning(f"Embedding: {failed}/{total} texts failed")

    return results
