"""LLM protocol for dependency injection."""
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class CompletionRequest:
    """Single prompt sent to the summarization service."""
    system_prompt: str
    user_prompt: str
    max_tokens: int = 1024


@runtime_checkable
class LLMProtocol(Protocol):
    """Protocol for text-completion / summarization client."""

    async def complete(self, request: CompletionRequest) -> str:
        """Run a completion.

        Args:
            request: System prompt, user prompt and token limit.

        Returns:
            Completion text.

        Raises:
            SummarizationError: On quota, auth, timeout or empty output.
        """
        ...
