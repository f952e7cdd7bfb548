"""Protocol interfaces for dependency injection."""
from .document_provider import DocumentProviderProtocol
from .embedder import EmbedderProtocol
from .llm import CompletionRequest, LLMProtocol
from .store import KeyValueStoreProtocol

__all__ = [
    "DocumentProviderProtocol",
    "EmbedderProtocol",
    "CompletionRequest",
    "LLMProtocol",
    "KeyValueStoreProtocol",
]
