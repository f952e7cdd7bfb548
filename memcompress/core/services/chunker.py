"""Chunker - heading-aware splitting of corpus documents."""

import logging
import re

from ..models.document import Chunk, ChunkingResult, Document, SkippedDocument
from ..protocols.document_provider import DocumentProviderProtocol

logger = logging.getLogger(__name__)

TARGET_CHUNK_SIZE = 384
MAX_CHUNK_SIZE = 768
MIN_CHUNK_SIZE = 64

_HEADING_RE = re.compile(r"^#{1,4}\s")
_HEADING_PREFIX_RE = re.compile(r"^#+\s*")


def domain_tag(path: str) -> str:
    """Derive a coarse topic tag from a corpus-relative path.

    `domains/<x>/...` -> `x`, `goals/<x>/<y>/...` -> `x/y`,
    otherwise the first directory, or "root" for top-level files.
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    dirs = parts[:-1]
    if not dirs:
        return "root"
    if dirs[0] == "domains" and len(dirs) >= 2:
        return dirs[1]
    if dirs[0] == "goals" and len(dirs) >= 2:
        return "/".join(dirs[1:3])
    return dirs[0]


class Chunker:
    """Splits documents into bounded, heading-scoped chunks."""

    def __init__(
        self,
        target_size: int = TARGET_CHUNK_SIZE,
        max_size: int = MAX_CHUNK_SIZE,
        min_size: int = MIN_CHUNK_SIZE,
    ):
        """Initialize chunker.

        Args:
            target_size: Target chunk size in characters.
            max_size: Buffer size that forces a split.
            min_size: Shorter chunks are dropped.
        """
        self._target_size = target_size
        self._max_size = max_size
        self._min_size = min_size

    def chunk(self, document: Document) -> list[Chunk]:
        """Split one document.

        Args:
            document: Document to split.

        Returns:
            Chunks in document order.
        """
        tag = domain_tag(document.path)
        doc_fingerprint = document.fingerprint
        chunks: list[Chunk] = []
        heading = document.path
        buffer = ""
        start_line = 1

        def flush(text: str, line: int) -> None:
            trimmed = text.strip()
            if len(trimmed) >= self._min_size:
                chunks.append(
                    Chunk(
                        text=trimmed,
                        source_path=document.path,
                        heading=heading,
                        domain_tag=tag,
                        source_fingerprint=doc_fingerprint,
                        start_line=line,
                    )
                )

        for i, line in enumerate(document.content.split("\n")):
            if _HEADING_RE.match(line):
                flush(buffer, start_line)
                heading = _HEADING_PREFIX_RE.sub("", line).strip()
                start_line = i + 1
                buffer = line + "\n"
                continue

            buffer += line + "\n"
            if len(buffer) < self._max_size:
                continue

            paragraph_break = buffer.rfind("\n\n", 0, self._max_size + 2)
            if paragraph_break > self._target_size // 2:
                rest = buffer[paragraph_break + 2 :]
                flush(buffer[:paragraph_break], start_line)
                buffer = rest
                start_line = i + 2 - rest.count("\n")
            else:
                flush(buffer, start_line)
                buffer = ""
                start_line = i + 2

        flush(buffer, start_line)
        return chunks

    def chunk_all(self, provider: DocumentProviderProtocol) -> ChunkingResult:
        """Chunk every readable document of a corpus.

        Documents shorter than the minimum chunk size are reported as skipped
        and left out of the fingerprint map.

        Args:
            provider: Corpus document provider.

        Returns:
            Chunks, path -> fingerprint map and skipped documents.
        """
        scan = provider.scan()
        result = ChunkingResult(skipped=list(scan.skipped))

        for document in scan.documents:
            if len(document.content.strip()) < self._min_size:
                result.skipped.append(SkippedDocument(document.path, "too short"))
                continue
            result.fingerprints[document.path] = document.fingerprint
            result.chunks.extend(self.chunk(document))

        if result.skipped:
            logger.info(f"Chunking: skipped {len(result.skipped)} documents")
        logger.info(
            f"Chunking: {len(result.chunks)} chunks from "
            f"{len(result.fingerprints)} documents"
        )
        return result

    def fingerprints(self, provider: DocumentProviderProtocol) -> dict[str, str]:
        """Current path -> fingerprint map, under the same rules as `chunk_all`."""
        return {
            d.path: d.fingerprint
            for d in provider.scan().documents
            if len(d.content.strip()) >= self._min_size
        }
