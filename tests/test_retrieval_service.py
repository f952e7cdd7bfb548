import json
import math

import numpy as np
import pytest

from conftest import FakeLLM, InMemoryProvider, MemoryStore, TableEmbedder
from memcompress.core.models.knowledge import CompressionStats, DomainSummary, KnowledgePack
from memcompress.core.services.compression_service import PACK_KEY, CompressionService
from memcompress.core.services.retrieval_service import RetrievalService
from memcompress.core.services.vector_index_service import VectorIndexService
from memcompress.core.strategies.budget import AdaptiveBudget

COVERED = "# Sleep\n\nKeep a fixed bedtime and avoid screens for an hour before lights out."
FRESH = "# Naps\n\nA twenty minute nap after lunch restores focus without hurting night sleep."
QUERY = "how do I sleep better"


def _unit(angle_cos: float) -> list[float]:
    return [angle_cos, math.sqrt(max(0.0, 1.0 - angle_cos**2)), 0.0]


def _pack(*domains: DomainSummary) -> bytes:
    pack = KnowledgePack(
        overview="Notes on sleep and recovery.",
        domains=list(domains),
        fingerprints={},
        stats=CompressionStats(),
        created_at="2026-01-01T00:00:00+00:00",
    )
    return json.dumps(pack.to_dict()).encode()


def _domain(label: str, centroid) -> DomainSummary:
    return DomainSummary(
        label=label,
        summary=f"{label} summary.",
        facts=[f"{label} fact."],
        centroid=np.asarray(centroid, dtype=np.float32),
        domain_tag=label.lower(),
    )


def _build(table, files=None):
    store = MemoryStore()
    provider = InMemoryProvider(files or {})
    embedder = TableEmbedder(table)
    compression = CompressionService(provider, embedder, FakeLLM(), store)
    index = VectorIndexService(provider, embedder, store)
    retrieval = RetrievalService(embedder, compression, index)
    return retrieval, index, store, embedder


@pytest.mark.parametrize(
    "similarities,expected",
    [([0.8], 5), ([0.9, 0.7], 5), ([0.5], 8), ([0.45], 8), ([0.3], 12), ([], 15)],
)
def test_adaptive_budget(similarities, expected):
    assert AdaptiveBudget().for_similarities(similarities) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("similarity,expected", [(0.8, 5), (0.5, 8), (0.3, 12)])
async def test_plan_budget_follows_domain_similarity(similarity, expected):
    retrieval, _, store, _ = _build({QUERY: [1.0, 0.0, 0.0]})
    store.data[PACK_KEY] = _pack(_domain("Sleep", _unit(similarity)))

    plan = await retrieval.plan(QUERY)

    assert [m.domain.label for m in plan.domain_matches] == ["Sleep"]
    assert plan.domain_matches[0].similarity == pytest.approx(similarity, abs=1e-5)
    assert plan.rag_budget == expected


@pytest.mark.asyncio
async def test_plan_without_pack_has_no_knowledge_budget():
    retrieval, _, _, _ = _build({QUERY: [1.0, 0.0, 0.0]})

    plan = await retrieval.plan(QUERY)

    assert plan.domain_matches == []
    assert plan.rag_budget == 15


@pytest.mark.asyncio
async def test_plan_keeps_top_n_domains_by_similarity():
    retrieval, _, store, _ = _build({QUERY: [1.0, 0.0, 0.0]})
    store.data[PACK_KEY] = _pack(
        _domain("A", _unit(0.1)),
        _domain("B", _unit(0.9)),
        _domain("C", _unit(0.5)),
        _domain("D", _unit(0.7)),
    )

    plan = await retrieval.plan(QUERY)

    assert [m.domain.label for m in plan.domain_matches] == ["B", "D", "C"]
    assert plan.mean_similarity == pytest.approx(0.7, abs=1e-5)
    assert plan.rag_budget == 5


@pytest.mark.asyncio
async def test_plan_with_unembeddable_query_matches_first_domains():
    retrieval, _, store, _ = _build({})
    store.data[PACK_KEY] = _pack(*[_domain(l, _unit(0.9)) for l in "ABCD"])

    plan = await retrieval.plan(QUERY)

    assert [m.domain.label for m in plan.domain_matches] == ["A", "B", "C"]
    assert all(m.similarity == 0.0 for m in plan.domain_matches)
    assert plan.rag_budget == 12


@pytest.mark.asyncio
async def test_retrieve_drops_chunks_covered_by_summaries():
    files = {"domains/sleep/bedtime.md": COVERED, "domains/sleep/naps.md": FRESH}
    retrieval, index, store, _ = _build(
        {QUERY: [1.0, 0.0, 0.0], COVERED: [1.0, 0.0, 0.0], FRESH: _unit(0.6)},
        files,
    )
    await index.rebuild()
    store.data[PACK_KEY] = _pack(_domain("Sleep", [1.0, 0.0, 0.0]))

    plan = await retrieval.plan(QUERY)
    results = await retrieval.retrieve(QUERY, plan)

    assert plan.rag_budget == 5
    assert [r.source_path for r in results] == ["domains/sleep/naps.md"]


@pytest.mark.asyncio
async def test_retrieve_keeps_chunks_that_fail_to_embed():
    files = {"domains/sleep/bedtime.md": COVERED, "domains/sleep/naps.md": FRESH}
    retrieval, index, store, embedder = _build(
        {QUERY: [1.0, 0.0, 0.0], COVERED: [1.0, 0.0, 0.0], FRESH: _unit(0.6)},
        files,
    )
    await index.rebuild()
    store.data[PACK_KEY] = _pack(_domain("Sleep", [1.0, 0.0, 0.0]))
    del embedder.table[COVERED]

    results = await retrieval.retrieve(QUERY, await retrieval.plan(QUERY))

    assert [r.source_path for r in results] == [
        "domains/sleep/bedtime.md",
        "domains/sleep/naps.md",
    ]


@pytest.mark.asyncio
async def test_retrieve_without_knowledge_skips_redundancy_filter():
    files = {"domains/sleep/bedtime.md": COVERED, "domains/sleep/naps.md": FRESH}
    retrieval, index, _, _ = _build(
        {QUERY: [1.0, 0.0, 0.0], COVERED: [1.0, 0.0, 0.0], FRESH: _unit(0.6)},
        files,
    )
    await index.rebuild()

    plan = await retrieval.plan(QUERY)
    results = await retrieval.retrieve(QUERY, plan)

    assert plan.rag_budget == 15
    assert len(results) == 2


@pytest.mark.asyncio
async def test_answer_context_formats_overview_summaries_and_chunks():
    files = {"domains/sleep/bedtime.md": COVERED, "domains/sleep/naps.md": FRESH}
    retrieval, index, store, _ = _build(
        {QUERY: [1.0, 0.0, 0.0], COVERED: [1.0, 0.0, 0.0], FRESH: _unit(0.6)},
        files,
    )
    await index.rebuild()
    store.data[PACK_KEY] = _pack(_domain("Sleep", [1.0, 0.0, 0.0]))

    response = await retrieval.answer_context(QUERY)

    assert response.sources == ["domains/sleep/naps.md"]
    assert "Notes on sleep and recovery." in response.context
    assert "## Sleep\nSleep summary.\n- Sleep fact." in response.context
    assert f"[sleep/Naps] {FRESH}" in response.context
    assert "Keep a fixed bedtime" not in response.context
