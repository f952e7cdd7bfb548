"""Vector index service - incremental indexing and similarity search."""

import json
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from ..errors import EmbeddingUnavailableError, StorageError
from ..models.document import (
    IndexStats,
    SearchResult,
    VectorIndex,
    VectorIndexEntry,
)
from ..protocols.document_provider import DocumentProviderProtocol
from ..protocols.embedder import EmbedderProtocol
from ..protocols.store import KeyValueStoreProtocol
from ..vectors import cosine_scores
from .batch_embedding import DEFAULT_BATCH_SIZE, embed_in_batches, embed_one
from .chunker import Chunker

logger = logging.getLogger(__name__)

INDEX_KEY = "vector-index"
INDEX_VERSION = 1


@dataclass
class RebuildResult:
    """Entry counts after an index rebuild."""
    added: int
    removed: int
    total: int


@dataclass
class RebuildProgress:
    """Progress report emitted while re-embedding changed documents."""
    phase: str
    current: int
    total: int


class VectorIndexService:
    """Persisted, incrementally rebuilt similarity index over corpus chunks.

    Rebuilds must not run concurrently against the same store.
    """

    def __init__(
        self,
        provider: DocumentProviderProtocol,
        embedder: EmbedderProtocol,
        store: KeyValueStoreProtocol,
        chunker: Optional[Chunker] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        version: int = INDEX_VERSION,
        top_k: int = 20,
        min_score: float = 0.2,
        index_key: str = INDEX_KEY,
    ):
        """Initialize vector index service.

        Args:
            provider: Corpus document provider.
            embedder: Embedding service.
            store: Store holding the index record.
            chunker: Chunker (defaults to standard sizes).
            batch_size: Texts per embedding call.
            version: Expected index version; other versions force a rebuild.
            top_k: Default number of search results.
            min_score: Default minimum cosine similarity.
            index_key: Store key for the index record.
        """
        self._provider = provider
        self._embedder = embedder
        self._store = store
        self._chunker = chunker or Chunker()
        self._batch_size = batch_size
        self._version = version
        self._top_k = top_k
        self._min_score = min_score
        self._index_key = index_key

        self._index: Optional[VectorIndex] = None
        self._size_bytes = 0

    def load(self) -> Optional[VectorIndex]:
        """Load the persisted index; None when absent, unreadable or outdated."""
        try:
            raw = self._store.load(self._index_key)
        except (OSError, StorageError) as e:
            logger.warning(f"Vector index unreadable, treating as absent: {e}")
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw.decode("utf-8"))
            if data.get("version") != self._version:
                logger.info("Vector index version mismatch, will rebuild")
                return None
            index = VectorIndex.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Vector index corrupt, treating as absent: {e}")
            return None

        self._index = index
        self._size_bytes = len(raw)
        logger.info(
            f"Vector index loaded: {len(index.entries)} chunks "
            f"from {len(index.fingerprints)} documents"
        )
        return index

    def _current(self) -> Optional[VectorIndex]:
        return self._index or self.load()

    async def rebuild(
        self, on_progress: Optional[Callable[[RebuildProgress], None]] = None
    ) -> RebuildResult:
        """Re-embed changed documents and persist the merged index.

        Entries of unchanged documents are carried over as-is. A changed
        document with any chunk that failed to embed is left out of the
        fingerprint snapshot so the next rebuild retries it.

        Args:
            on_progress: Receives embedding progress for changed chunks.

        Returns:
            Counts of added, removed and total entries.

        Raises:
            EmbeddingUnavailableError: Changed chunks exist and none embedded.
            StorageError: The index could not be written.
        """
        corpus = self._chunker.chunk_all(self._provider)
        current = corpus.fingerprints
        existing = self._current()
        previous = existing.fingerprints if existing else {}

        unchanged = {p for p, h in current.items() if previous.get(p) == h}
        changed = {p for p in current if p not in unchanged}
        removed_docs = {p for p in previous if p not in current}

        kept = [
            e for e in (existing.entries if existing else []) if e.chunk.source_path in unchanged
        ]
        pending = [c for c in corpus.chunks if c.source_path in changed]

        added: list[VectorIndexEntry] = []
        fingerprints = {p: h for p, h in current.items() if p in unchanged}

        if pending:
            def on_batch(done: int, total: int) -> None:
                if on_progress:
                    on_progress(RebuildProgress("embedding", done, total))

            if on_progress:
                on_progress(RebuildProgress("embedding", 0, len(pending)))
            vectors = await embed_in_batches(
                self._embedder, [c.text for c in pending], self._batch_size, on_batch
            )
            if all(v is None for v in vectors):
                raise EmbeddingUnavailableError(
                    f"All {len(pending)} changed chunks failed to embed"
                )

            failed_docs = set()
            for chunk, vector in zip(pending, vectors):
                if vector is None:
                    failed_docs.add(chunk.source_path)
                    continue
                added.append(VectorIndexEntry(chunk=chunk, embedding=vector))

            for path in changed - failed_docs:
                fingerprints[path] = current[path]
            if failed_docs:
                logger.warning(
                    f"Vector index: {len(failed_docs)} documents had failed embeddings, "
                    "will retry on next rebuild"
                )
        else:
            for path in changed:
                fingerprints[path] = current[path]

        removed = (len(existing.entries) if existing else 0) - len(kept)
        index = VectorIndex(
            version=self._version,
            fingerprints=fingerprints,
            entries=kept + added,
        )
        raw = json.dumps(index.to_dict()).encode("utf-8")
        self._store.save(self._index_key, raw)
        self._index = index
        self._size_bytes = len(raw)

        result = RebuildResult(added=len(added), removed=removed, total=len(index.entries))
        logger.info(
            f"Vector index refreshed: {result.added} added, {result.removed} removed "
            f"({len(removed_docs)} documents gone), {result.total} total chunks"
        )
        return result

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        domain_filter: Optional[str] = None,
    ) -> list[SearchResult]:
        """Cosine-similarity search over indexed chunks.

        Args:
            query: Search query.
            top_k: Override number of results.
            min_score: Override minimum similarity.
            domain_filter: Keep only this domain tag and its children.

        Returns:
            Results sorted by descending score; empty when the query
            cannot be embedded or nothing is indexed.
        """
        top_k = self._top_k if top_k is None else top_k
        min_score = self._min_score if min_score is None else min_score
        if top_k <= 0:
            return []

        index = self._current()
        if index is None or not index.entries:
            return []

        query_embedding = await embed_one(self._embedder, query)
        if query_embedding is None:
            return []

        rows = range(len(index.entries))
        if domain_filter:
            prefix = domain_filter + "/"
            rows = [
                i
                for i in rows
                if index.entries[i].chunk.domain_tag == domain_filter
                or index.entries[i].chunk.domain_tag.startswith(prefix)
            ]
        rows = list(rows)
        if not rows:
            return []

        scores = cosine_scores(query_embedding, index.matrix[rows])
        order = np.argsort(-scores, kind="stable")

        results = []
        for pos in order:
            score = float(scores[pos])
            if score < min_score:
                break
            results.append(SearchResult.from_chunk(index.entries[rows[pos]].chunk, score))
            if len(results) >= top_k:
                break

        logger.info(f"Search: returned {len(results)}/{top_k} chunks for '{query[:50]}'")
        return results

    async def multi_search(
        self,
        queries: Sequence[str],
        top_k: int = 50,
        min_score: float = 0.25,
    ) -> list[SearchResult]:
        """Fan several queries in, keeping each chunk's best score.

        Args:
            queries: Sub-queries.
            top_k: Number of merged results.
            min_score: Minimum similarity per sub-query.

        Returns:
            Global top results keyed by (source path, start line).
        """
        if not queries or top_k <= 0:
            return []

        per_query = math.ceil(top_k / len(queries)) + 10
        merged: dict[tuple[str, int], SearchResult] = {}
        for query in queries:
            for r in await self.search(query, top_k=per_query, min_score=min_score):
                key = (r.source_path, r.start_line)
                if key not in merged or r.score > merged[key].score:
                    merged[key] = r

        results = sorted(merged.values(), key=lambda r: r.score, reverse=True)
        return results[:top_k]

    def stats(self) -> Optional[IndexStats]:
        """Size of the loaded index, or None when nothing is loaded."""
        index = self._current()
        if index is None:
            return None
        return IndexStats(
            chunk_count=len(index.entries),
            document_count=len(index.fingerprints),
            size_bytes=self._size_bytes,
        )

    def delete(self) -> None:
        """Remove the persisted index and forget the loaded copy."""
        self._store.delete(self._index_key)
        self._index = None
        self._size_bytes = 0
        logger.info("Vector index deleted")
