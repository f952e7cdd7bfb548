import logging

from openai import AsyncOpenAI, OpenAIError

from ...core.errors import SummarizationError
from ...core.protocols.llm import CompletionRequest

logger = logging.getLogger(__name__)


class OllamaClient:
    """LLM client for Ollama (OpenAI-compatible API)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        model: str = "qwen2.5:7b",
        api_key: str = "ollama",
        temperature: float = 0.1,
        timeout: float = 60.0,
    ):
        """Initialize Ollama client.

        Args:
            base_url: OpenAI-compatible API URL.
            model: Model name.
            api_key: API key (Ollama ignores it).
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
        """
        self._client = AsyncOpenAI(
            base_url=base_url, api_key=api_key, timeout=timeout, max_retries=0
        )
        self._model = model
        self._temperature = temperature

    async def complete(self, request: CompletionRequest) -> str:
        """Run a single non-streaming completion.

        Args:
            request: System prompt, user prompt and token limit.

        Returns:
            Completion text.

        Raises:
            SummarizationError: On API failure or an empty reply.
        """
        messages = [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": request.user_prompt},
        ]

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=self._temperature,
            )
        except OpenAIError as e:
            logger.error(f"[complete] LLM error: {e}")
            raise SummarizationError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise SummarizationError("LLM returned an empty reply")
        return content
