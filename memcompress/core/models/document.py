"""Document, chunk and vector index models."""
import hashlib
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

import numpy as np


def fingerprint(content: str) -> str:
    """Content hash used for change detection only."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Document:
    """Source document as read from the corpus."""
    path: str  # relative to the corpus root, "/" separated
    content: str

    @cached_property
    def fingerprint(self) -> str:
        return fingerprint(self.content)


@dataclass(frozen=True)
class SkippedDocument:
    """Document left out of a corpus scan, with the reason."""
    path: str
    reason: str


@dataclass
class CorpusScan:
    """Readable documents plus the entries that were skipped."""
    documents: list[Document] = field(default_factory=list)
    skipped: list[SkippedDocument] = field(default_factory=list)


@dataclass(frozen=True)
class Chunk:
    """Heading-scoped span of a document."""
    text: str
    source_path: str
    heading: str
    domain_tag: str
    source_fingerprint: str
    start_line: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "source_path": self.source_path,
            "heading": self.heading,
            "domain_tag": self.domain_tag,
            "source_fingerprint": self.source_fingerprint,
            "start_line": self.start_line,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        return cls(
            text=str(data["text"]),
            source_path=str(data["source_path"]),
            heading=str(data["heading"]),
            domain_tag=str(data["domain_tag"]),
            source_fingerprint=str(data["source_fingerprint"]),
            start_line=int(data["start_line"]),
        )


@dataclass
class ChunkingResult:
    """Chunks of a whole corpus with per-document fingerprints."""
    chunks: list[Chunk] = field(default_factory=list)
    fingerprints: dict[str, str] = field(default_factory=dict)
    skipped: list[SkippedDocument] = field(default_factory=list)


@dataclass
class SearchResult:
    """Scored chunk returned by a similarity search."""
    text: str
    source_path: str
    heading: str
    domain_tag: str
    score: float
    start_line: int

    @classmethod
    def from_chunk(cls, chunk: Chunk, score: float) -> "SearchResult":
        return cls(
            text=chunk.text,
            source_path=chunk.source_path,
            heading=chunk.heading,
            domain_tag=chunk.domain_tag,
            score=score,
            start_line=chunk.start_line,
        )


@dataclass
class VectorIndexEntry:
    """Indexed chunk with its embedding."""
    chunk: Chunk
    embedding: np.ndarray

    def to_dict(self) -> dict[str, Any]:
        data = self.chunk.to_dict()
        data["embedding"] = [float(x) for x in self.embedding]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VectorIndexEntry":
        return cls(
            chunk=Chunk.from_dict(data),
            embedding=np.asarray(data["embedding"], dtype=np.float32),
        )


@dataclass
class VectorIndex:
    """Persisted similarity index over the corpus."""
    version: int
    fingerprints: dict[str, str] = field(default_factory=dict)
    entries: list[VectorIndexEntry] = field(default_factory=list)

    @cached_property
    def matrix(self) -> np.ndarray:
        """Entry embeddings stacked row-wise."""
        if not self.entries:
            return np.zeros((0, 0), dtype=np.float32)
        return np.vstack([e.embedding for e in self.entries]).astype(np.float32)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "fingerprints": dict(self.fingerprints),
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VectorIndex":
        return cls(
            version=int(data["version"]),
            fingerprints={str(k): str(v) for k, v in data["fingerprints"].items()},
            entries=[VectorIndexEntry.from_dict(e) for e in data["entries"]],
        )


@dataclass
class IndexStats:
    """Size of the loaded vector index."""
    chunk_count: int
    document_count: int
    size_bytes: int
