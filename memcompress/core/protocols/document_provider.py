"""Document provider protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.document import CorpusScan


@runtime_checkable
class DocumentProviderProtocol(Protocol):
    """Protocol for enumerating corpus documents."""

    def scan(self) -> CorpusScan:
        """Read every readable document under the corpus root.

        Unreadable entries are reported in `CorpusScan.skipped`, never raised.
        """
        ...
