"""Compressed knowledge models."""
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

PACK_VERSION = 1
MAX_FACTS = 10


@dataclass
class DomainSummary:
    """Summary of one cluster, with its cached centroid."""
    label: str
    summary: str
    facts: list[str] = field(default_factory=list)
    centroid: Optional[np.ndarray] = None
    domain_tag: str = "general"
    member_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "summary": self.summary,
            "facts": list(self.facts),
            "centroid": (
                [float(x) for x in self.centroid] if self.centroid is not None else None
            ),
            "domain_tag": self.domain_tag,
            "member_count": self.member_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainSummary":
        centroid = data.get("centroid")
        return cls(
            label=str(data["label"]),
            summary=str(data["summary"]),
            facts=[str(f) for f in data.get("facts", [])][:MAX_FACTS],
            centroid=(
                np.asarray(centroid, dtype=np.float32) if centroid else None
            ),
            domain_tag=str(data.get("domain_tag", "general")),
            member_count=int(data.get("member_count", 0)),
        )


@dataclass
class CompressionStats:
    """Counters for one compression run."""
    input_tokens: int = 0
    output_tokens: int = 0
    ratio: float = 1.0
    chunks_processed: int = 0
    duplicates_removed: int = 0
    clusters_found: int = 0
    documents_skipped: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompressionStats":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


@dataclass
class KnowledgePack:
    """Persisted output of a compression run."""
    overview: str
    domains: list[DomainSummary]
    fingerprints: dict[str, str]
    stats: CompressionStats
    created_at: str
    version: int = PACK_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "overview": self.overview,
            "domains": [d.to_dict() for d in self.domains],
            "fingerprints": dict(self.fingerprints),
            "stats": self.stats.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KnowledgePack":
        return cls(
            version=int(data["version"]),
            overview=str(data["overview"]),
            domains=[DomainSummary.from_dict(d) for d in data["domains"]],
            fingerprints={str(k): str(v) for k, v in data["fingerprints"].items()},
            stats=CompressionStats.from_dict(data.get("stats", {})),
            created_at=str(data["created_at"]),
        )

    def to_markdown(self) -> str:
        """Render the pack as a human-readable markdown document."""
        lines = ["## Overview", "", self.overview.strip(), ""]
        for domain in self.domains:
            lines.extend([f"## {domain.label}", "", domain.summary.strip(), ""])
            if domain.facts:
                lines.append("### Key Facts")
                lines.extend(f"- {fact}" for fact in domain.facts)
                lines.append("")
        return "\n".join(lines).rstrip() + "\n"


def parse_knowledge_markdown(text: str, created_at: str = "") -> Optional[KnowledgePack]:
    """Parse markdown in the `KnowledgePack.to_markdown` shape.

    Returns None when the text holds neither an overview nor any section.
    Centroids and the fingerprint snapshot are not part of the markdown.
    """
    overview_parts: list[str] = []
    domains: list[DomainSummary] = []
    current: Optional[DomainSummary] = None
    in_overview = False
    in_facts = False

    for line in text.splitlines():
        if line.startswith("## Overview"):
            in_overview, in_facts = True, False
            continue
        if line.startswith("## "):
            in_overview, in_facts = False, False
            current = DomainSummary(label=line[3:].strip(), summary="")
            domains.append(current)
            continue
        if line.startswith("### Facts") or line.startswith("### Key Facts"):
            in_facts = True
            continue
        if line.startswith("### "):
            in_facts = False
            continue

        stripped = line.strip()
        if not stripped:
            continue
        if in_overview:
            overview_parts.append(stripped)
        elif current is not None and in_facts and line.startswith("- "):
            if len(current.facts) < MAX_FACTS:
                current.facts.append(line[2:].strip())
        elif current is not None and not in_facts and not line.startswith("#"):
            current.summary = f"{current.summary} {stripped}".strip()

    if not domains and not overview_parts:
        return None

    stats = CompressionStats(clusters_found=len(domains))
    return KnowledgePack(
        overview=" ".join(overview_parts),
        domains=domains,
        fingerprints={},
        stats=stats,
        created_at=created_at,
    )


@dataclass
class CompressionProgress:
    """Progress report emitted by the compression pipeline."""
    phase: str  # embedding | dedup | clustering | summarizing | overview | done
    percent: int
    detail: str
    failed: bool = False
