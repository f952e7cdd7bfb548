import asyncio
import logging
from functools import cached_property
from typing import Optional, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder:
    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self._model_name = model_name

    @cached_property
    def model(self) -> SentenceTransformer:
        logger.info(f"Loading embedding model: {self._model_name}")
        return SentenceTransformer(self._model_name)

    def warmup(self) -> None:
        _ = self.model
        logger.info("Embedding model warmed up")

    def encode(self, texts: list[str]) -> np.ndarray:
        return self.model.encode(
            texts, convert_to_numpy=True, normalize_embeddings=True
        )

    async def embed(self, text: str) -> Optional[np.ndarray]:
        try:
            vectors = await asyncio.to_thread(self.encode, [text])
        except Exception as e:
            logger.warning(f"Embedding failed: {e}")
            return None
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[np.ndarray]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self.encode, list(texts))
            return list(vectors)
        except Exception as e:
            # Retry one by one so a single bad input does not sink the batch
            logger.warning(f"Batch embedding failed, retrying per item: {e}")
            return [await self.embed(text) for text in texts]
