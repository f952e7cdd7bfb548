import numpy as np
import pytest

from memcompress.core.models.document import Chunk
from memcompress.core.services.deduplicator import dedupe
from memcompress.core.vectors import pairwise_cosine


def _chunk(text: str) -> Chunk:
    return Chunk(
        text=text,
        source_path=f"notes/{len(text)}.md",
        heading="notes",
        domain_tag="notes",
        source_fingerprint="x",
        start_line=1,
    )


def _vec(*values: float) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def test_near_duplicates_collapse_to_longest():
    chunks = [_chunk("short one"), _chunk("a much longer duplicate"), _chunk("unrelated")]
    embeddings = [_vec(1.0, 0.0, 0.0), _vec(0.99, 0.05, 0.0), _vec(0.0, 0.0, 1.0)]

    result = dedupe(chunks, embeddings)

    assert result.removed_count == 1
    assert [c.text for c in result.chunks] == ["a much longer duplicate", "unrelated"]
    assert len(result.embeddings) == 2


def test_no_surviving_pair_above_threshold():
    rng = np.random.default_rng(7)
    base = rng.normal(size=(6, 8)).astype(np.float32)
    embeddings = list(base) + [base[0] + 0.01, base[3] * 2.0]
    chunks = [_chunk(f"chunk number {i}") for i in range(len(embeddings))]

    result = dedupe(chunks, embeddings, threshold=0.92)
    sims = pairwise_cosine(result.embeddings)
    np.fill_diagonal(sims, 0.0)

    assert result.removed_count >= 2
    assert sims.max() < 0.92


def test_groups_are_transitive():
    # a~b and b~c are above threshold even though a~c is not
    a = _vec(1.0, 0.0)
    b = _vec(np.cos(0.35), np.sin(0.35))
    c = _vec(np.cos(0.7), np.sin(0.7))
    chunks = [_chunk("aa"), _chunk("bbbb"), _chunk("ccc")]

    result = dedupe(chunks, [a, b, c], threshold=0.92)

    assert [ch.text for ch in result.chunks] == ["bbbb"]
    assert result.removed_count == 2


def test_ties_keep_first_and_order_is_stable():
    chunks = [_chunk("x1"), _chunk("y1"), _chunk("x2")]
    embeddings = [_vec(1.0, 0.0), _vec(0.0, 1.0), _vec(1.0, 0.0)]

    result = dedupe(chunks, embeddings)

    assert [c.text for c in result.chunks] == ["x1", "y1"]


def test_distinct_corpus_removes_nothing():
    chunks = [_chunk("a"), _chunk("b")]
    result = dedupe(chunks, [_vec(1.0, 0.0), _vec(0.0, 1.0)])
    assert result.removed_count == 0
    assert result.chunks == chunks


def test_length_mismatch_fails_fast():
    with pytest.raises(ValueError):
        dedupe([_chunk("a")], [])


def test_dimension_mismatch_fails_fast():
    with pytest.raises(ValueError):
        dedupe([_chunk("a"), _chunk("b")], [_vec(1.0, 0.0), _vec(1.0, 0.0, 0.0)])
