"""Summarization scheduling strategies."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SummarizationStrategy(ABC):
    """Base class for scheduling per-cluster summarization calls."""

    @abstractmethod
    async def run(
        self, items: Sequence[T], summarize: Callable[[T], Awaitable[R]]
    ) -> list[R]:
        """Summarize every item; results keep input order."""
        ...


class SequentialSummarization(SummarizationStrategy):
    """One call at a time, in cluster order."""

    async def run(
        self, items: Sequence[T], summarize: Callable[[T], Awaitable[R]]
    ) -> list[R]:
        results = []
        for item in items:
            results.append(await summarize(item))
        return results


class BoundedParallelSummarization(SummarizationStrategy):
    """Up to `max_concurrency` calls in flight."""

    def __init__(self, max_concurrency: int = 4):
        """Initialize strategy.

        Args:
            max_concurrency: Maximum concurrent summarization calls.
        """
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self._max_concurrency = max_concurrency

    async def run(
        self, items: Sequence[T], summarize: Callable[[T], Awaitable[R]]
    ) -> list[R]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def guarded(item: T) -> R:
            async with semaphore:
                return await summarize(item)

        return list(await asyncio.gather(*(guarded(item) for item in items)))


def build_summarization_strategy(name: str, max_concurrency: int = 4) -> SummarizationStrategy:
    """Strategy by settings name: "sequential" or "parallel"."""
    if name == "sequential":
        return SequentialSummarization()
    if name == "parallel":
        return BoundedParallelSummarization(max_concurrency)
    raise ValueError(f"Unknown summarization strategy: {name}")
