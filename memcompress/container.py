import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Re-registering an interface drops any instance cached for it.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        self._singletons.pop(interface, None)
        if singleton:
            self._singleton_flags.add(interface)
        else:
            self._singleton_flags.discard(interface)

    def register_instance(self, interface: type[T], instance: T) -> None:
        """Bind an already built instance (e.g. a test double)."""
        self.register(interface, lambda: instance, singleton=True)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface.__name__}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


container = Container()


def configure_container(settings: Settings, target: Container | None = None) -> Container:
    """Configure container with all dependencies.

    Only bindings that are not registered yet are added, so callers can
    bind their own collaborators (fakes, alternative stores) beforehand.

    Args:
        settings: Application settings.
        target: Container to configure (defaults to the module container).

    Returns:
        Configured container.
    """
    from .core.protocols.document_provider import DocumentProviderProtocol
    from .core.protocols.embedder import EmbedderProtocol
    from .core.protocols.llm import LLMProtocol
    from .core.protocols.store import KeyValueStoreProtocol
    from .core.services.chunker import Chunker
    from .core.services.compression_service import CompressionService
    from .core.services.retrieval_service import RetrievalService
    from .core.services.vector_index_service import VectorIndexService
    from .core.strategies.budget import AdaptiveBudget
    from .core.strategies.summarization import build_summarization_strategy
    from .infrastructure.document_loaders import FileSystemDocumentProvider
    from .infrastructure.embeddings.sentence_transformer import (
        SentenceTransformerEmbedder,
    )
    from .infrastructure.llm.ollama_client import OllamaClient
    from .infrastructure.storage.file_store import FileKeyValueStore

    c = target if target is not None else container

    def bind(interface: type, factory: Callable[[], Any]) -> None:
        if interface not in c._factories:
            c.register(interface, factory, singleton=True)

    bind(
        EmbedderProtocol,
        lambda: SentenceTransformerEmbedder(settings.embedding_model),
    )

    bind(
        LLMProtocol,
        lambda: OllamaClient(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        ),
    )

    bind(
        DocumentProviderProtocol,
        lambda: FileSystemDocumentProvider(settings.memory_dir),
    )

    bind(
        KeyValueStoreProtocol,
        lambda: FileKeyValueStore(settings.store_path),
    )

    bind(Chunker, Chunker)

    bind(
        CompressionService,
        lambda: CompressionService(
            provider=c.resolve(DocumentProviderProtocol),
            embedder=c.resolve(EmbedderProtocol),
            llm=c.resolve(LLMProtocol),
            store=c.resolve(KeyValueStoreProtocol),
            chunker=c.resolve(Chunker),
            strategy=build_summarization_strategy(
                settings.summary_strategy, settings.summary_concurrency
            ),
            dedup_threshold=settings.dedup_threshold,
            min_clusters=settings.min_clusters,
            max_clusters=settings.max_clusters,
            kmeans_max_iter=settings.kmeans_max_iter,
            seed=settings.cluster_seed,
            batch_size=settings.embedding_batch_size,
            summary_input_chars=settings.summary_input_chars,
            max_tokens=settings.llm_max_tokens,
            structured_summaries=settings.structured_summaries,
        ),
    )

    bind(
        VectorIndexService,
        lambda: VectorIndexService(
            provider=c.resolve(DocumentProviderProtocol),
            embedder=c.resolve(EmbedderProtocol),
            store=c.resolve(KeyValueStoreProtocol),
            chunker=c.resolve(Chunker),
            batch_size=settings.embedding_batch_size,
            version=settings.index_version,
            top_k=settings.search_top_k,
            min_score=settings.search_min_score,
        ),
    )

    bind(
        RetrievalService,
        lambda: RetrievalService(
            embedder=c.resolve(EmbedderProtocol),
            compression=c.resolve(CompressionService),
            vector_index=c.resolve(VectorIndexService),
            budget=AdaptiveBudget(
                strong_threshold=settings.budget_strong_threshold,
                strong=settings.budget_strong,
                medium_threshold=settings.budget_medium_threshold,
                medium=settings.budget_medium,
                weak=settings.budget_weak,
                no_knowledge=settings.budget_no_knowledge,
            ),
            domain_top_n=settings.domain_top_n,
            redundancy_threshold=settings.redundancy_threshold,
            batch_size=settings.embedding_batch_size,
        ),
    )

    logger.info("Container configured")
    return c
