"""
Shared test fixtures and deterministic fakes.

Provides: vocabulary embedder, table embedder, scripted LLM, in-memory
document provider and key-value store, synthetic two-topic corpus.
"""

import re
from typing import Callable, Optional, Sequence, Union

import numpy as np
import pytest

from memcompress.core.errors import StorageError, SummarizationError
from memcompress.core.models.document import CorpusScan, Document, SkippedDocument
from memcompress.core.protocols.llm import CompletionRequest

_WORD_RE = re.compile(r"[a-z0-9]+")

HEALTH_WORDS = [
    "cardiology", "nutrition", "vitamins", "exercise",
    "sleeping", "hydration", "cholesterol", "metabolism",
]
FINANCE_WORDS = [
    "portfolio", "dividends", "investing", "budgeting",
    "mortgage", "retirement", "brokerage", "inflation",
]


class VocabularyEmbedder:
    """Bag-of-words embedder; each new word gets the next dimension."""

    def __init__(self, dim: int = 512):
        self._dim = dim
        self._vocab: dict[str, int] = {}
        self.embedded: list[str] = []
        self.fail_texts: set[str] = set()
        self.fail_all = False

    def vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dim, dtype=np.float32)
        for word in _WORD_RE.findall(text.lower()):
            if word not in self._vocab:
                if len(self._vocab) >= self._dim:
                    raise RuntimeError("vocabulary exhausted")
                self._vocab[word] = len(self._vocab)
            vec[self._vocab[word]] += 1.0
        norm = float(np.linalg.norm(vec))
        return vec / norm if norm else vec

    def _one(self, text: str) -> Optional[np.ndarray]:
        if self.fail_all or text in self.fail_texts:
            return None
        self.embedded.append(text)
        return self.vector(text)

    async def embed(self, text: str) -> Optional[np.ndarray]:
        return self._one(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[np.ndarray]]:
        return [self._one(t) for t in texts]


class TableEmbedder:
    """Returns fixed vectors per text; unknown texts fail."""

    def __init__(self, table: dict[str, Sequence[float]]):
        self.table = {k: np.asarray(v, dtype=np.float32) for k, v in table.items()}

    async def embed(self, text: str) -> Optional[np.ndarray]:
        return self.table.get(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[np.ndarray]]:
        return [self.table.get(t) for t in texts]


class RaisingEmbedder:
    """Every call raises."""

    async def embed(self, text: str) -> Optional[np.ndarray]:
        raise ConnectionError("embedding service down")

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[np.ndarray]]:
        raise ConnectionError("embedding service down")


class FakeLLM:
    """Scripted completion client that records requests."""

    def __init__(
        self,
        reply: Union[str, Callable[[CompletionRequest], str]] = "A concise summary.",
        fail: bool = False,
    ):
        self._reply = reply
        self.fail = fail
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        if self.fail:
            raise SummarizationError("quota exceeded")
        if callable(self._reply):
            return self._reply(request)
        return self._reply


class InMemoryProvider:
    """Document provider over a path -> content dict."""

    def __init__(self, files: Optional[dict[str, str]] = None):
        self.files = dict(files or {})
        self.skipped: list[SkippedDocument] = []

    def scan(self) -> CorpusScan:
        return CorpusScan(
            documents=[Document(path=p, content=c) for p, c in sorted(self.files.items())],
            skipped=list(self.skipped),
        )


class MemoryStore:
    """Key-value store in a dict, with switchable failures."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.saves = 0

    def load(self, key: str) -> Optional[bytes]:
        if self.fail_reads:
            raise StorageError("disk unreadable")
        return self.data.get(key)

    def save(self, key: str, data: bytes) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        self.saves += 1
        self.data[key] = data

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


def topic_note(words: list[str], index: int, marker: str) -> str:
    """Seven of the eight topic words plus one word unique to the note."""
    chosen = [w for i, w in enumerate(words) if i != index % len(words)]
    return " ".join(chosen + [f"{marker}{chr(97 + index)}tag"]) + "."


def two_topic_files(per_topic: int = 10) -> dict[str, str]:
    files = {}
    for i in range(per_topic):
        files[f"domains/health/note{i:02d}.md"] = topic_note(HEALTH_WORDS, i, "wellness")
        files[f"domains/finance/note{i:02d}.md"] = topic_note(FINANCE_WORDS, i, "money")
    return files


@pytest.fixture
def embedder() -> VocabularyEmbedder:
    return VocabularyEmbedder()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def two_topic_provider() -> InMemoryProvider:
    return InMemoryProvider(two_topic_files())
