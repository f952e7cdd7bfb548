"""Query-time retrieval models."""
from dataclasses import dataclass, field

from .document import SearchResult
from .knowledge import DomainSummary


@dataclass
class DomainMatch:
    """Domain summary scored against a query."""
    domain: DomainSummary
    similarity: float


@dataclass
class RetrievalPlan:
    """Matched domains and the raw-search budget derived from them."""
    domain_matches: list[DomainMatch] = field(default_factory=list)
    rag_budget: int = 15

    @property
    def mean_similarity(self) -> float:
        if not self.domain_matches:
            return 0.0
        return sum(m.similarity for m in self.domain_matches) / len(self.domain_matches)


@dataclass
class RetrievalResponse:
    """Fused retrieval output for presentation layer."""
    plan: RetrievalPlan
    results: list[SearchResult]
    context: str
    sources: list[str]
