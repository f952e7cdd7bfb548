"""Adaptive raw-retrieval budget."""

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class AdaptiveBudget:
    """Maps mean domain-match similarity to a raw-search chunk count.

    Strong summary coverage needs fewer raw chunks.
    """
    strong_threshold: float = 0.6
    strong: int = 5
    medium_threshold: float = 0.45
    medium: int = 8
    weak: int = 12
    no_knowledge: int = 15

    def for_similarities(self, similarities: Sequence[float]) -> int:
        if not similarities:
            return self.no_knowledge
        mean = sum(similarities) / len(similarities)
        if mean >= self.strong_threshold:
            return self.strong
        if mean >= self.medium_threshold:
            return self.medium
        return self.weak
