"""Compression service - chunk, embed, dedup, cluster, summarize, persist."""

import json
import logging
import math
import re
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import numpy as np

from ..errors import EmbeddingUnavailableError, NoCorpusError, StorageError
from ..models.document import Chunk
from ..models.knowledge import (
    MAX_FACTS,
    PACK_VERSION,
    CompressionProgress,
    CompressionStats,
    DomainSummary,
    KnowledgePack,
)
from ..protocols.document_provider import DocumentProviderProtocol
from ..protocols.embedder import EmbedderProtocol
from ..protocols.llm import CompletionRequest, LLMProtocol
from ..protocols.store import KeyValueStoreProtocol
from ..strategies.summarization import SequentialSummarization, SummarizationStrategy
from ..vectors import centroid
from .batch_embedding import DEFAULT_BATCH_SIZE, embed_in_batches
from .chunker import Chunker
from .clustering import auto_cluster, label_clusters, make_rng
from .deduplicator import DEFAULT_DEDUP_THRESHOLD, dedupe
from .fact_extractor import extract_facts

logger = logging.getLogger(__name__)

PACK_KEY = "knowledge-pack"

SUMMARY_SYSTEM_PROMPT = "You compress knowledge base entries into dense summaries."

SUMMARY_PROMPT = """Summarize these related knowledge base entries into a concise ~100 token paragraph.
Preserve specific facts, names, numbers, and actionable details.
Output only the summary paragraph, with no introduction or commentary.

Entries:
{entries}"""

STRUCTURED_SYSTEM_PROMPT = "You compress knowledge. Output ONLY valid JSON with no markdown fencing."

STRUCTURED_PROMPT = """Given these related knowledge base entries under the topic "{label}":

{entries}

Produce a JSON object with:
- "summary": a concise 1-2 sentence summary of the key theme
- "facts": an array of 3-8 atomic, standalone facts taken from the entries

Output ONLY valid JSON."""

OVERVIEW_SYSTEM_PROMPT = "You write concise knowledge overviews. Be direct and informative."

OVERVIEW_PROMPT = """You are summarizing a personal knowledge base. Given these domain summaries, write a ~200 token overview paragraph capturing the key themes, priorities and state of the knowledge. Output only the overview paragraph.

Domains:
{domains}"""

_FENCE_RE = re.compile(r"```(?:json)?\s*")

ProgressCallback = Callable[[CompressionProgress], None]


def estimate_tokens(text: str) -> int:
    """Rough token count (4 characters per token)."""
    return math.ceil(len(text) / 4)


def _majority_tag(chunks: list[Chunk]) -> str:
    """Most frequent domain tag; ties go to the first seen."""
    return Counter(c.domain_tag for c in chunks).most_common(1)[0][0]


@dataclass
class _ClusterGroup:
    label: str
    chunks: list[Chunk]
    embeddings: list[np.ndarray]


@dataclass
class _ClusterSummary:
    summary: str
    facts: Optional[list[str]] = None
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class _ProgressReporter:
    callback: Optional[ProgressCallback]
    phase: str = "embedding"
    percent: int = 0

    def report(self, phase: str, percent: int, detail: str) -> None:
        self.phase, self.percent = phase, percent
        logger.info(f"[{phase}] {detail}")
        if self.callback:
            self.callback(CompressionProgress(phase=phase, percent=percent, detail=detail))

    def fail(self, error: Exception) -> None:
        if self.callback:
            self.callback(
                CompressionProgress(
                    phase=self.phase,
                    percent=self.percent,
                    detail=f"Failed: {error}",
                    failed=True,
                )
            )


class CompressionService:
    """Builds and persists the knowledge pack for a corpus."""

    def __init__(
        self,
        provider: DocumentProviderProtocol,
        embedder: EmbedderProtocol,
        llm: LLMProtocol,
        store: KeyValueStoreProtocol,
        chunker: Optional[Chunker] = None,
        strategy: Optional[SummarizationStrategy] = None,
        dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD,
        min_clusters: int = 2,
        max_clusters: int = 10,
        kmeans_max_iter: int = 50,
        seed: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        summary_input_chars: int = 6000,
        max_tokens: int = 1024,
        structured_summaries: bool = False,
        pack_key: str = PACK_KEY,
    ):
        """Initialize compression service.

        Args:
            provider: Corpus document provider.
            embedder: Embedding service.
            llm: Summarization client.
            store: Store holding the knowledge pack record.
            chunker: Chunker (defaults to standard sizes).
            strategy: Scheduling of per-cluster summarization calls.
            dedup_threshold: Cosine similarity at which chunks are merged.
            min_clusters: Smallest k tried.
            max_clusters: Largest k tried.
            kmeans_max_iter: K-means iteration cap.
            seed: Clustering seed; None for system randomness.
            batch_size: Texts per embedding call.
            summary_input_chars: Truncation limit for a cluster prompt.
            max_tokens: Token limit for each summarization call.
            structured_summaries: Ask for JSON summary + facts.
            pack_key: Store key for the pack record.
        """
        self._provider = provider
        self._embedder = embedder
        self._llm = llm
        self._store = store
        self._chunker = chunker or Chunker()
        self._strategy = strategy or SequentialSummarization()
        self._dedup_threshold = dedup_threshold
        self._min_clusters = min_clusters
        self._max_clusters = max_clusters
        self._kmeans_max_iter = kmeans_max_iter
        self._seed = seed
        self._batch_size = batch_size
        self._summary_input_chars = summary_input_chars
        self._max_tokens = max_tokens
        self._structured = structured_summaries
        self._pack_key = pack_key

    async def compress(self, on_progress: Optional[ProgressCallback] = None) -> KnowledgePack:
        """Run the full pipeline and replace the persisted pack.

        Nothing is written unless every phase succeeds.

        Args:
            on_progress: Receives a `CompressionProgress` per step.

        Returns:
            The new knowledge pack.

        Raises:
            NoCorpusError: The corpus produced no chunks.
            EmbeddingUnavailableError: No chunk could be embedded.
            StorageError: The pack could not be written.
        """
        progress = _ProgressReporter(on_progress)
        try:
            return await self._run(progress)
        except Exception as e:
            logger.error(f"Compression failed during {progress.phase}: {e}")
            progress.fail(e)
            raise

    async def _run(self, progress: _ProgressReporter) -> KnowledgePack:
        started = time.monotonic()

        progress.report("embedding", 5, "Collecting chunks...")
        corpus = self._chunker.chunk_all(self._provider)
        if not corpus.chunks:
            raise NoCorpusError("No chunks found in corpus")

        total = len(corpus.chunks)
        progress.report("embedding", 5, f"Embedding {total} chunks...")

        def on_batch(done: int, count: int) -> None:
            progress.report("embedding", 5 + (15 * done) // count, f"Embedded {done}/{count} chunks")

        vectors = await embed_in_batches(
            self._embedder, [c.text for c in corpus.chunks], self._batch_size, on_batch
        )
        chunks = [c for c, v in zip(corpus.chunks, vectors) if v is not None]
        embeddings = [v for v in vectors if v is not None]
        if not embeddings:
            raise EmbeddingUnavailableError(f"All {total} chunk embeddings failed")
        progress.report("embedding", 20, f"Embedded {len(chunks)}/{total} chunks")

        progress.report("dedup", 25, "Removing near-duplicates...")
        deduped = dedupe(chunks, embeddings, self._dedup_threshold)
        progress.report(
            "dedup",
            35,
            f"{len(deduped.chunks)} unique chunks (removed {deduped.removed_count} duplicates)",
        )

        progress.report("clustering", 40, "Finding optimal clusters...")
        groups = self._cluster(deduped.chunks, deduped.embeddings)
        progress.report("clustering", 50, f"Formed {len(groups)} knowledge clusters")

        progress.report("summarizing", 55, "Summarizing clusters...")
        done = 0

        async def summarize(group: _ClusterGroup) -> _ClusterSummary:
            nonlocal done
            result = await self._summarize_cluster(group)
            done += 1
            progress.report(
                "summarizing",
                55 + round(25 * done / len(groups)),
                f"Summarized cluster {done}/{len(groups)}: {group.label}",
            )
            return result

        summaries = await self._strategy.run(groups, summarize)

        domains = [
            DomainSummary(
                label=group.label,
                summary=result.summary,
                facts=(
                    result.facts[:MAX_FACTS]
                    if result.facts is not None
                    else extract_facts(c.text for c in group.chunks)
                ),
                centroid=centroid(group.embeddings),
                domain_tag=_majority_tag(group.chunks),
                member_count=len(group.chunks),
            )
            for group, result in zip(groups, summaries)
        ]

        progress.report("overview", 85, "Generating knowledge overview...")
        overview, overview_in, overview_out = await self._overview(domains, len(chunks))

        input_chars = sum(len(c.text) for c in deduped.chunks)
        output_chars = len(overview) + sum(
            len(d.summary) + len("".join(d.facts)) for d in domains
        )
        stats = CompressionStats(
            input_tokens=sum(s.input_tokens for s in summaries) + overview_in,
            output_tokens=sum(s.output_tokens for s in summaries) + overview_out,
            ratio=round(input_chars / output_chars, 1) if output_chars else 1.0,
            chunks_processed=len(chunks),
            duplicates_removed=deduped.removed_count,
            clusters_found=len(domains),
            documents_skipped=len(corpus.skipped),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

        pack = KnowledgePack(
            overview=overview,
            domains=domains,
            fingerprints=dict(corpus.fingerprints),
            stats=stats,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._store.save(self._pack_key, json.dumps(pack.to_dict()).encode("utf-8"))

        progress.report("done", 100, "Compression complete")
        return pack

    def _cluster(
        self, chunks: list[Chunk], embeddings: list[np.ndarray]
    ) -> list[_ClusterGroup]:
        """Auto-select k and group chunks per non-empty cluster."""
        max_k = min(self._max_clusters, len(chunks) // 2)
        result = auto_cluster(
            embeddings,
            min_k=self._min_clusters,
            max_k=max_k,
            max_iter=self._kmeans_max_iter,
            rng=make_rng(self._seed),
        )
        labels = label_clusters(
            [c.text for c in chunks],
            result.assignments,
            [c.domain_tag for c in chunks],
        )

        groups = []
        for cluster in range(result.k):
            members = [i for i, a in enumerate(result.assignments) if a == cluster]
            if not members:
                continue
            groups.append(
                _ClusterGroup(
                    label=labels[cluster],
                    chunks=[chunks[i] for i in members],
                    embeddings=[embeddings[i] for i in members],
                )
            )
        return groups

    async def _summarize_cluster(self, group: _ClusterGroup) -> _ClusterSummary:
        """One summarization call; failures fall back to the label."""
        entries = "\n---\n".join(
            f"[{c.domain_tag}/{c.heading}] {c.text}" for c in group.chunks
        )[: self._summary_input_chars]

        if self._structured:
            request = CompletionRequest(
                system_prompt=STRUCTURED_SYSTEM_PROMPT,
                user_prompt=STRUCTURED_PROMPT.format(label=group.label, entries=entries),
                max_tokens=self._max_tokens,
            )
        else:
            request = CompletionRequest(
                system_prompt=SUMMARY_SYSTEM_PROMPT,
                user_prompt=SUMMARY_PROMPT.format(entries=entries),
                max_tokens=self._max_tokens,
            )
        input_tokens = estimate_tokens(request.user_prompt)

        try:
            reply = await self._llm.complete(request)
        except Exception as e:
            logger.warning(f"Summarization failed for '{group.label}', using label: {e}")
            return _ClusterSummary(
                summary=group.label,
                facts=self._heading_facts(group) if self._structured else None,
                input_tokens=input_tokens,
            )

        output_tokens = estimate_tokens(reply)
        if self._structured:
            summary, facts = self._parse_structured(reply, group)
            return _ClusterSummary(summary, facts, input_tokens, output_tokens)

        return _ClusterSummary(
            summary=reply.strip() or group.label,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def _parse_structured(
        self, reply: str, group: _ClusterGroup
    ) -> tuple[str, list[str]]:
        """Read {"summary", "facts"} JSON, falling back to label and headings."""
        try:
            parsed = json.loads(_FENCE_RE.sub("", reply).strip())
            if not isinstance(parsed, dict):
                raise ValueError("expected a JSON object")
        except ValueError as e:
            logger.warning(f"Malformed summary for '{group.label}': {e}")
            return group.label, self._heading_facts(group)

        summary = parsed.get("summary")
        facts = parsed.get("facts")
        if not isinstance(summary, str) or not summary.strip():
            summary = group.label
        if isinstance(facts, list):
            facts = [str(f).strip() for f in facts if str(f).strip()]
        else:
            facts = []
        return summary.strip(), facts[:MAX_FACTS]

    @staticmethod
    def _heading_facts(group: _ClusterGroup) -> list[str]:
        headings: list[str] = []
        for chunk in group.chunks:
            if chunk.heading not in headings:
                headings.append(chunk.heading)
        return headings[:5]

    async def _overview(
        self, domains: list[DomainSummary], chunk_count: int
    ) -> tuple[str, int, int]:
        """Global overview; failures fall back to a one-line template."""
        fallback = (
            f"Knowledge base with {len(domains)} clusters "
            f"covering {chunk_count} source chunks."
        )
        domain_list = "\n".join(f"- {d.label}: {d.summary[:200]}" for d in domains)
        request = CompletionRequest(
            system_prompt=OVERVIEW_SYSTEM_PROMPT,
            user_prompt=OVERVIEW_PROMPT.format(domains=domain_list),
            max_tokens=self._max_tokens,
        )
        input_tokens = estimate_tokens(request.user_prompt)

        try:
            reply = await self._llm.complete(request)
        except Exception as e:
            logger.warning(f"Overview generation failed, using template: {e}")
            return fallback, input_tokens, 0

        return reply.strip() or fallback, input_tokens, estimate_tokens(reply)

    def load_pack(self) -> Optional[KnowledgePack]:
        """Persisted pack, or None when absent, unreadable or outdated."""
        try:
            raw = self._store.load(self._pack_key)
        except (OSError, StorageError) as e:
            logger.warning(f"Knowledge pack unreadable, treating as absent: {e}")
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw.decode("utf-8"))
            if data.get("version") != PACK_VERSION:
                logger.info("Knowledge pack version mismatch, ignoring")
                return None
            return KnowledgePack.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Knowledge pack corrupt, treating as absent: {e}")
            return None

    def get_overview(self) -> str:
        """Overview text of the persisted pack, or ""."""
        pack = self.load_pack()
        return pack.overview if pack else ""

    def is_stale(self) -> bool:
        """Whether the corpus changed since the pack was built.

        No pack counts as stale; an empty or unreadable corpus does not.
        """
        pack = self.load_pack()
        if pack is None:
            return True

        current = self._chunker.fingerprints(self._provider)
        if not current:
            return False

        return current != pack.fingerprints
