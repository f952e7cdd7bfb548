"""Error family for compression, indexing and retrieval."""


class MemCompressError(Exception):
    """Base class for memcompress errors."""


class NoCorpusError(MemCompressError):
    """The corpus produced no chunks to compress."""


class EmbeddingUnavailableError(MemCompressError):
    """Every embedding call failed."""


class SummarizationError(MemCompressError):
    """Summarization backend failed (quota, auth, timeout, empty reply)."""


class StorageError(MemCompressError):
    """Persisting a record failed."""


class DocumentLoadError(MemCompressError):
    """A document could not be read or parsed."""
