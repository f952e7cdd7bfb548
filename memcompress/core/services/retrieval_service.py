"""Retrieval service - fuses compressed knowledge with raw chunk search."""

import logging
from typing import Optional

import numpy as np

from ..models.document import SearchResult
from ..models.retrieval import DomainMatch, RetrievalPlan, RetrievalResponse
from ..protocols.embedder import EmbedderProtocol
from ..strategies.budget import AdaptiveBudget
from ..vectors import cosine_scores
from .batch_embedding import DEFAULT_BATCH_SIZE, embed_in_batches, embed_one
from .compression_service import CompressionService
from .vector_index_service import VectorIndexService

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 300


class RetrievalService:
    """Plans a query against domain summaries, then searches raw chunks."""

    def __init__(
        self,
        embedder: EmbedderProtocol,
        compression: CompressionService,
        vector_index: VectorIndexService,
        budget: Optional[AdaptiveBudget] = None,
        domain_top_n: int = 3,
        redundancy_threshold: float = 0.78,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize retrieval service.

        Args:
            embedder: Embedding service.
            compression: Source of the persisted knowledge pack.
            vector_index: Raw chunk index.
            budget: Mapping from domain similarity to search budget.
            domain_top_n: Number of domain summaries matched per query.
            redundancy_threshold: Similarity to a matched centroid above
                which a raw chunk is considered already covered.
            batch_size: Texts per embedding call.
        """
        self._embedder = embedder
        self._compression = compression
        self._vector_index = vector_index
        self._budget = budget or AdaptiveBudget()
        self._domain_top_n = domain_top_n
        self._redundancy_threshold = redundancy_threshold
        self._batch_size = batch_size

    async def plan(self, query: str) -> RetrievalPlan:
        """Match the query against cached domain centroids and size the budget.

        Without a knowledge pack the plan has no matches. When the query
        cannot be embedded, the first N domains are matched with similarity 0.
        """
        pack = self._compression.load_pack()
        if pack is None or not pack.domains:
            return RetrievalPlan(domain_matches=[], rag_budget=self._budget.for_similarities([]))

        query_embedding = await embed_one(self._embedder, query)
        if query_embedding is None:
            logger.warning("Query embedding failed, matching first domains")
            matches = [DomainMatch(d, 0.0) for d in pack.domains[: self._domain_top_n]]
        else:
            scored = []
            for domain in pack.domains:
                if domain.centroid is None:
                    continue
                score = float(cosine_scores(query_embedding, domain.centroid[None, :])[0])
                scored.append(DomainMatch(domain, score))
            scored.sort(key=lambda m: m.similarity, reverse=True)
            matches = scored[: self._domain_top_n]

        budget = self._budget.for_similarities([m.similarity for m in matches])
        logger.info(
            f"Plan: {len(matches)} domains matched, budget {budget} for '{query[:50]}'"
        )
        return RetrievalPlan(domain_matches=matches, rag_budget=budget)

    async def retrieve(self, query: str, plan: RetrievalPlan) -> list[SearchResult]:
        """Search raw chunks within the plan's budget, minus covered ones."""
        results = await self._vector_index.search(query, top_k=plan.rag_budget)
        centroids = [
            m.domain.centroid for m in plan.domain_matches if m.domain.centroid is not None
        ]
        if not results or not centroids:
            return results

        vectors = await embed_in_batches(
            self._embedder, [r.text for r in results], self._batch_size
        )
        matrix = np.vstack(centroids)

        kept = []
        for result, vector in zip(results, vectors):
            if vector is None:
                kept.append(result)
                continue
            if float(cosine_scores(vector, matrix).max()) >= self._redundancy_threshold:
                continue
            kept.append(result)

        dropped = len(results) - len(kept)
        if dropped:
            logger.info(f"Retrieve: dropped {dropped} chunks covered by summaries")
        return kept

    async def answer_context(self, query: str) -> RetrievalResponse:
        """Plan, retrieve and format context for a downstream LLM.

        Args:
            query: User query.

        Returns:
            Plan, raw results, formatted context and unique sources.
        """
        plan = await self.plan(query)
        results = await self.retrieve(query, plan)
        overview = self._compression.get_overview()

        return RetrievalResponse(
            plan=plan,
            results=results,
            context=self._format_context(overview, plan, results),
            sources=self._get_unique_sources(results),
        )

    def _format_context(
        self, overview: str, plan: RetrievalPlan, results: list[SearchResult]
    ) -> str:
        """Format overview, matched summaries and raw chunks as context."""
        parts = []
        if overview:
            parts.append(f"## Overview\n{overview}")

        for match in plan.domain_matches:
            lines = [f"## {match.domain.label}", match.domain.summary]
            lines.extend(f"- {fact}" for fact in match.domain.facts)
            parts.append("\n".join(lines))

        if results:
            snippets = [
                f"[{r.domain_tag}/{r.heading}] {r.text[:SNIPPET_CHARS]}" for r in results
            ]
            parts.append("## Related Notes\n" + "\n\n".join(snippets))

        return "\n\n".join(parts)

    def _get_unique_sources(self, results: list[SearchResult]) -> list[str]:
        """Get unique source paths."""
        seen = set()
        sources = []
        for r in results:
            if r.source_path not in seen:
                seen.add(r.source_path)
                sources.append(r.source_path)
        return sources
