import numpy as np
import pytest

from conftest import RaisingEmbedder, TableEmbedder
from memcompress.core.services.batch_embedding import (
    coerce_embedding,
    embed_in_batches,
    embed_one,
)


class FlakyBatchEmbedder:
    """Fails the second batch outright."""

    def __init__(self):
        self.calls = 0

    async def embed(self, text):
        return np.ones(3)

    async def embed_batch(self, texts):
        self.calls += 1
        if self.calls == 2:
            raise TimeoutError("batch timed out")
        return [np.ones(3) for _ in texts]


def test_coerce_embedding():
    assert coerce_embedding([0.1, 0.2]).dtype == np.float32
    assert coerce_embedding(None) is None
    assert coerce_embedding([]) is None
    assert coerce_embedding([[1.0, 2.0]]) is None
    assert coerce_embedding([1.0, float("nan")]) is None
    assert coerce_embedding(["a", "b"]) is None


@pytest.mark.asyncio
async def test_failed_batch_becomes_none_for_its_items():
    embedder = FlakyBatchEmbedder()
    progress = []

    vectors = await embed_in_batches(
        embedder, [f"t{i}" for i in range(5)], batch_size=2,
        on_batch=lambda done, total: progress.append((done, total)),
    )

    assert [v is None for v in vectors] == [False, False, True, True, False]
    assert progress == [(2, 5), (4, 5), (5, 5)]


@pytest.mark.asyncio
async def test_per_item_failures_are_kept_in_place():
    embedder = TableEmbedder({"a": [1.0, 0.0], "c": [0.0, 1.0]})
    vectors = await embed_in_batches(embedder, ["a", "b", "c"], batch_size=16)
    assert vectors[1] is None
    np.testing.assert_allclose(vectors[2], [0.0, 1.0])


@pytest.mark.asyncio
async def test_dimension_mismatch_fails_fast():
    embedder = TableEmbedder({"a": [1.0, 0.0], "b": [1.0, 0.0, 0.0]})
    with pytest.raises(ValueError):
        await embed_in_batches(embedder, ["a", "b"])


@pytest.mark.asyncio
async def test_invalid_batch_size():
    with pytest.raises(ValueError):
        await embed_in_batches(TableEmbedder({}), ["a"], batch_size=0)


@pytest.mark.asyncio
async def test_embed_one_swallows_service_errors():
    assert await embed_one(RaisingEmbedder(), "query") is None
    assert await embed_one(TableEmbedder({}), "query") is None
