"""Core business services."""
from .chunker import Chunker
from .compression_service import CompressionService
from .retrieval_service import RetrievalService
from .vector_index_service import RebuildProgress, RebuildResult, VectorIndexService

__all__ = [
    "Chunker",
    "CompressionService",
    "RetrievalService",
    "VectorIndexService",
    "RebuildProgress",
    "RebuildResult",
]
