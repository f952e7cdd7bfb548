import asyncio
import logging
import sys
import time

import httpx

from memcompress.config.settings import settings
from memcompress.container import configure_container, container
from memcompress.core.errors import MemCompressError
from memcompress.core.models.knowledge import CompressionProgress
from memcompress.core.protocols.embedder import EmbedderProtocol
from memcompress.core.services.compression_service import CompressionService
from memcompress.core.services.retrieval_service import RetrievalService
from memcompress.core.services.vector_index_service import (
    RebuildProgress,
    VectorIndexService,
)

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

USAGE = """Usage: python -m memcompress.presentation.cli <command> [args]
Commands:
  compress            Rebuild the knowledge pack
  index               Refresh the vector index
  search <query>...   Search raw chunks (several queries are merged)
  query <query>       Build retrieval context for a query
  stale               Report whether the knowledge pack is out of date
  stats               Show pack and index statistics"""


def ensure_ollama_model() -> bool:
    """Ensure Ollama model is available.

    Returns:
        True if model ready, False otherwise.
    """
    model = settings.llm_model
    base_url = settings.llm_base_url.replace("/v1", "")

    logger.info(f"Checking Ollama model: {model}")

    for attempt in range(30):
        try:
            resp = httpx.get(f"{base_url}/api/tags", timeout=5)
            if resp.status_code == 200:
                models = [m["name"] for m in resp.json().get("models", [])]
                if any(model in m for m in models):
                    logger.info(f"Model {model} is ready")
                    return True

                logger.info(f"Pulling model {model}...")
                pull_resp = httpx.post(
                    f"{base_url}/api/pull",
                    json={"name": model},
                    timeout=600,
                )
                if pull_resp.status_code == 200:
                    logger.info(f"Model {model} pulled successfully")
                    return True
                logger.error(f"Failed to pull model: {pull_resp.text}")
        except httpx.HTTPError:
            logger.info(f"Waiting for Ollama... ({attempt + 1}/30)")
            time.sleep(2)

    logger.error("Ollama not available")
    return False


def _print_progress(progress: CompressionProgress) -> None:
    marker = "FAILED " if progress.failed else ""
    print(f"{marker}[{progress.percent:3d}%] {progress.phase}: {progress.detail}")


def _print_rebuild(progress: RebuildProgress) -> None:
    print(f"[{progress.phase}] {progress.current}/{progress.total}")


def _configure_with_warm_embedder():
    """Configure the container and load the embedding model up front."""
    configure_container(settings, container)
    embedder = container.resolve(EmbedderProtocol)
    embedder.warmup()


def cmd_compress():
    """Compress command - rebuild the knowledge pack."""
    if not ensure_ollama_model():
        logger.warning("Continuing without the model; summaries will fall back to labels")

    _configure_with_warm_embedder()
    service = container.resolve(CompressionService)
    pack = asyncio.run(service.compress(_print_progress))

    stats = pack.stats
    logger.info(
        f"Compressed {stats.chunks_processed} chunks into {stats.clusters_found} clusters "
        f"({stats.duplicates_removed} duplicates removed, ratio {stats.ratio}x, "
        f"{stats.duration_ms} ms)"
    )
    print(pack.to_markdown())


def cmd_index():
    """Index command - refresh the vector index."""
    _configure_with_warm_embedder()
    service = container.resolve(VectorIndexService)
    result = asyncio.run(service.rebuild(_print_rebuild))
    logger.info(f"Index: {result.added} added, {result.removed} removed, {result.total} total")


def cmd_search(queries: list[str]):
    """Search command - raw chunk search."""
    _configure_with_warm_embedder()
    service = container.resolve(VectorIndexService)

    if len(queries) == 1:
        results = asyncio.run(service.search(queries[0]))
    else:
        results = asyncio.run(
            service.multi_search(
                queries,
                top_k=settings.multi_search_top_k,
                min_score=settings.multi_search_min_score,
            )
        )

    for r in results:
        print(f"{r.score:.3f}  {r.source_path}:{r.start_line}  [{r.domain_tag}/{r.heading}]")
        print(f"       {r.text[:200]}")


def cmd_query(query: str):
    """Query command - print fused retrieval context."""
    _configure_with_warm_embedder()
    service = container.resolve(RetrievalService)
    response = asyncio.run(service.answer_context(query))

    logger.info(
        f"{len(response.plan.domain_matches)} domains matched, "
        f"budget {response.plan.rag_budget}, {len(response.results)} chunks"
    )
    print(response.context)
    if response.sources:
        print("\nSources:")
        for source in response.sources:
            print(f"  - {source}")


def cmd_stale():
    """Stale command - compare corpus against the pack snapshot."""
    configure_container(settings, container)
    service = container.resolve(CompressionService)
    stale = service.is_stale()
    print("stale" if stale else "fresh")
    sys.exit(1 if stale else 0)


def cmd_stats():
    """Stats command - pack and index statistics."""
    configure_container(settings, container)
    pack = container.resolve(CompressionService).load_pack()
    index_stats = container.resolve(VectorIndexService).stats()

    if pack is None:
        print("Knowledge pack: none")
    else:
        s = pack.stats
        print(
            f"Knowledge pack: {len(pack.domains)} domains, created {pack.created_at}\n"
            f"  chunks {s.chunks_processed}, duplicates {s.duplicates_removed}, "
            f"skipped {s.documents_skipped}, ratio {s.ratio}x, "
            f"tokens {s.input_tokens} in / {s.output_tokens} out"
        )

    if index_stats is None:
        print("Vector index: none")
    else:
        print(
            f"Vector index: {index_stats.chunk_count} chunks from "
            f"{index_stats.document_count} documents, {index_stats.size_bytes} bytes"
        )


def main():
    """CLI entry point."""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]

    try:
        if command == "compress":
            cmd_compress()
        elif command == "index":
            cmd_index()
        elif command == "search" and args:
            cmd_search(args)
        elif command == "query" and args:
            cmd_query(" ".join(args))
        elif command == "stale":
            cmd_stale()
        elif command == "stats":
            cmd_stats()
        else:
            print(f"Unknown command: {' '.join(sys.argv[1:])}")
            print(USAGE)
            sys.exit(1)
    except MemCompressError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
