"""Domain models."""
from .document import (
    Chunk,
    ChunkingResult,
    CorpusScan,
    Document,
    IndexStats,
    SearchResult,
    SkippedDocument,
    VectorIndex,
    VectorIndexEntry,
)
from .knowledge import (
    CompressionProgress,
    CompressionStats,
    DomainSummary,
    KnowledgePack,
)
from .retrieval import DomainMatch, RetrievalPlan, RetrievalResponse

__all__ = [
    "Chunk",
    "ChunkingResult",
    "CorpusScan",
    "Document",
    "IndexStats",
    "SearchResult",
    "SkippedDocument",
    "VectorIndex",
    "VectorIndexEntry",
    "CompressionProgress",
    "CompressionStats",
    "DomainSummary",
    "KnowledgePack",
    "DomainMatch",
    "RetrievalPlan",
    "RetrievalResponse",
]
