"""Corpus provider that walks a directory tree."""

import logging
from pathlib import Path
from typing import Optional

from ...core.errors import DocumentLoadError
from ...core.models.document import CorpusScan, Document, SkippedDocument
from .composite_loader import CompositeLoader

logger = logging.getLogger(__name__)


class FileSystemDocumentProvider:
    """Reads every supported file under a root directory."""

    def __init__(self, root: str | Path, loader: Optional[CompositeLoader] = None):
        """Initialize provider.

        Args:
            root: Corpus root directory.
            loader: Loader for supported file types.
        """
        self._root = Path(root).expanduser()
        self._loader = loader or CompositeLoader()

    def scan(self) -> CorpusScan:
        """Read all documents in path order; failures become skipped entries."""
        scan = CorpusScan()
        if not self._root.is_dir():
            logger.warning(f"Corpus root not found: {self._root}")
            return scan

        for file_path in sorted(self._root.rglob("*")):
            if not file_path.is_file() or not self._loader.supports(file_path):
                continue
            rel = file_path.relative_to(self._root).as_posix()
            if any(part.startswith(".") for part in rel.split("/")):
                continue

            try:
                content = self._loader.load(file_path)
            except DocumentLoadError as e:
                logger.warning(f"Skipping {rel}: {e}")
                scan.skipped.append(SkippedDocument(path=rel, reason=str(e)))
                continue

            scan.documents.append(Document(path=rel, content=content))

        logger.info(
            f"Corpus scan: {len(scan.documents)} documents, "
            f"{len(scan.skipped)} skipped under {self._root}"
        )
        return scan
