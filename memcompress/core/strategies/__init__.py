"""Summarization scheduling and retrieval budget strategies."""
from .budget import AdaptiveBudget
from .summarization import (
    BoundedParallelSummarization,
    SequentialSummarization,
    SummarizationStrategy,
    build_summarization_strategy,
)

__all__ = [
    "AdaptiveBudget",
    "BoundedParallelSummarization",
    "SequentialSummarization",
    "SummarizationStrategy",
    "build_summarization_strategy",
]
