import pytest

from conftest import FakeLLM, InMemoryProvider, MemoryStore, VocabularyEmbedder, two_topic_files
from memcompress.config.settings import Settings
from memcompress.container import Container, configure_container
from memcompress.core.protocols import (
    DocumentProviderProtocol,
    EmbedderProtocol,
    KeyValueStoreProtocol,
    LLMProtocol,
)
from memcompress.core.services import CompressionService, RetrievalService, VectorIndexService
from memcompress.infrastructure.document_loaders import FileSystemDocumentProvider
from memcompress.infrastructure.storage import FileKeyValueStore


def test_register_and_resolve_singletons():
    c = Container()
    c.register(list, list, singleton=True)
    c.register(dict, dict)

    assert c.resolve(list) is c.resolve(list)
    assert c.resolve(dict) is not c.resolve(dict)

    with pytest.raises(KeyError):
        c.resolve(set)


def test_reregistering_drops_cached_instance():
    c = Container()
    c.register(list, lambda: [1], singleton=True)
    first = c.resolve(list)
    c.register_instance(list, [2])
    assert c.resolve(list) == [2] and c.resolve(list) is not first


def test_fakes_satisfy_protocols():
    assert isinstance(VocabularyEmbedder(), EmbedderProtocol)
    assert isinstance(FakeLLM(), LLMProtocol)
    assert isinstance(InMemoryProvider(), DocumentProviderProtocol)
    assert isinstance(MemoryStore(), KeyValueStoreProtocol)


def test_configure_wires_settings_into_services(tmp_path):
    settings = Settings(
        memory_dir=str(tmp_path / "memory"),
        store_path=str(tmp_path / "store"),
        summary_strategy="parallel",
    )
    c = configure_container(settings, Container())

    assert isinstance(c.resolve(DocumentProviderProtocol), FileSystemDocumentProvider)
    assert isinstance(c.resolve(KeyValueStoreProtocol), FileKeyValueStore)
    assert c.resolve(RetrievalService) is c.resolve(RetrievalService)
    assert isinstance(c.resolve(CompressionService), CompressionService)


@pytest.mark.asyncio
async def test_preregistered_fakes_are_kept(tmp_path):
    c = Container()
    store = MemoryStore()
    c.register_instance(EmbedderProtocol, VocabularyEmbedder())
    c.register_instance(LLMProtocol, FakeLLM())
    c.register_instance(DocumentProviderProtocol, InMemoryProvider(two_topic_files()))
    c.register_instance(KeyValueStoreProtocol, store)

    configure_container(Settings(cluster_seed=3, store_path=str(tmp_path)), c)
    pack = await c.resolve(CompressionService).compress()
    result = await c.resolve(VectorIndexService).rebuild()

    assert len(pack.domains) == 2
    assert result.total == 20
    assert set(store.data) == {"knowledge-pack", "vector-index"}
