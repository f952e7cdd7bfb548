"""Embedder protocol for dependency injection."""
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Protocol for embedding service."""

    async def embed(self, text: str) -> Optional[np.ndarray]:
        """Embed a single text.

        Args:
            text: Text to embed.

        Returns:
            1-D embedding vector, or None if this item failed.
        """
        ...

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[np.ndarray]]:
        """Embed several texts in one call.

        Args:
            texts: Texts to embed.

        Returns:
            One vector (or None on per-item failure) per input text.
        """
        ...
