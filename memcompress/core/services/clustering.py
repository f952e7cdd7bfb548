"""Clustering - k-means over cosine distance with silhouette-driven k.

All randomness flows through a `numpy.random.Generator`; pass a seeded one
(`make_rng(seed)`) for reproducible runs.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..vectors import normalize, pairwise_cosine

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITER = 50
UNCATEGORIZED = "Uncategorized"

STOPWORDS = frozenset(
    """
    a about above after again against all also am an and any are aren as at
    be because been before being below between both but by can cannot could
    did do does doing done down during each either else etc even ever every
    few for from further get gets got had has have having he her here hers him
    his how however i if in into is it its itself just know let like made make
    many may me might more most much must my need no nor not now of off often
    on once one only or other ought our ours out over own per quite rather
    really same see she should since so some still such than that the their
    theirs them then there these they thing things this those though through
    thus to too under until up upon us use used using very via want was way we
    well were what when where whether which while who whom whose why will with
    within without would yet you your yours
    """.split()
)

_MD_HEADING_RE = re.compile(r"^#{1,3}\s+(.+)$", re.MULTILINE)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_TAG_SEPARATOR_RE = re.compile(r"[-_/\s]+")


@dataclass
class KMeansResult:
    """Cluster assignment per point and final centroids."""
    assignments: list[int]
    centroids: np.ndarray
    iterations: int


@dataclass
class ClusteringResult:
    """Best clustering found by automatic k selection."""
    k: int
    assignments: list[int]
    centroids: np.ndarray
    score: float


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Random generator; `None` seeds from system entropy."""
    return np.random.default_rng(seed)


def _as_matrix(embeddings: Sequence[np.ndarray]) -> np.ndarray:
    if len(embeddings) == 0:
        return np.zeros((0, 0), dtype=np.float64)
    dim = len(embeddings[0])
    for e in embeddings:
        if len(e) != dim:
            raise ValueError(f"Embedding dimension mismatch: {len(e)} != {dim}")
    return np.vstack(embeddings).astype(np.float64)


def _distances_to(matrix: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Cosine distance of every row to every centroid, shape (n, k)."""
    row_norms = np.linalg.norm(matrix, axis=1)
    cen_norms = np.linalg.norm(centroids, axis=1)
    denom = np.outer(row_norms, cen_norms)
    dots = matrix @ centroids.T
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / denom, 0.0)
    return 1.0 - sims


def kmeans_plus_plus_init(
    embeddings: Sequence[np.ndarray],
    k: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Pick k initial centroids with D²-weighted sampling.

    Args:
        embeddings: Points to cluster.
        k: Number of centroids (clamped to the number of points).
        rng: Random generator.

    Returns:
        Array of shape (k, dim).
    """
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    matrix = _as_matrix(embeddings)
    n = len(matrix)
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    rng = rng or make_rng()
    k = min(k, n)

    chosen = [matrix[int(rng.integers(n))]]
    for _ in range(1, k):
        nearest = _distances_to(matrix, np.vstack(chosen)).min(axis=1)
        weights = np.clip(nearest, 0.0, None) ** 2
        total = float(weights.sum())
        if total <= 0.0:
            idx = int(rng.integers(n))
        else:
            idx = int(rng.choice(n, p=weights / total))
        chosen.append(matrix[idx])

    return np.vstack(chosen).copy()


def assign_clusters(embeddings: Sequence[np.ndarray], centroids: np.ndarray) -> list[int]:
    """Nearest centroid per point by cosine distance; ties go to the lowest index."""
    matrix = _as_matrix(embeddings)
    if len(matrix) == 0:
        return []
    return [int(c) for c in np.argmin(_distances_to(matrix, centroids), axis=1)]


def kmeans(
    embeddings: Sequence[np.ndarray],
    k: int,
    max_iter: int = DEFAULT_MAX_ITER,
    rng: Optional[np.random.Generator] = None,
) -> KMeansResult:
    """Cluster with k-means++ init and cosine distance.

    Centroids start at unit norm and are re-normalized after every update. A
    centroid that loses all members keeps its previous position.

    Args:
        embeddings: Points to cluster.
        k: Number of clusters (clamped to the number of points).
        max_iter: Iteration cap.
        rng: Random generator.

    Returns:
        Assignments, centroids and the number of iterations run.
    """
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    matrix = _as_matrix(embeddings)
    n = len(matrix)
    if n == 0:
        return KMeansResult(assignments=[], centroids=np.zeros((0, 0)), iterations=0)

    k = min(k, n)
    centroids = np.vstack(
        [normalize(c) for c in kmeans_plus_plus_init(matrix, k, rng)]
    ).astype(np.float64)
    labels: Optional[np.ndarray] = None
    iterations = 0

    for iterations in range(1, max_iter + 1):
        new_labels = np.argmin(_distances_to(matrix, centroids), axis=1)
        if labels is not None and np.array_equal(new_labels, labels):
            break
        labels = new_labels
        for c in range(k):
            members = matrix[labels == c]
            if len(members) == 0:
                continue
            centroids[c] = normalize(members.mean(axis=0))

    if labels is None:
        labels = np.argmin(_distances_to(matrix, centroids), axis=1)

    return KMeansResult(
        assignments=[int(c) for c in labels],
        centroids=centroids,
        iterations=iterations,
    )


def silhouette(
    embeddings: Sequence[np.ndarray],
    assignments: Sequence[int],
    k: int,
) -> float:
    """Mean silhouette over points whose cluster has at least two members.

    Returns 0.0 when no point qualifies.
    """
    matrix = _as_matrix(embeddings)
    n = len(matrix)
    if len(assignments) != n:
        raise ValueError(f"Got {len(assignments)} assignments for {n} points")
    if n <= 1 or k <= 1:
        return 0.0

    labels = np.asarray(assignments)
    distances = 1.0 - pairwise_cosine(list(matrix))
    total = 0.0
    counted = 0

    for i in range(n):
        same = labels == labels[i]
        same[i] = False
        if not same.any():
            continue
        a = float(distances[i, same].mean())

        b = np.inf
        for c in range(k):
            if c == labels[i]:
                continue
            other = labels == c
            if other.any():
                b = min(b, float(distances[i, other].mean()))
        if b == np.inf:
            continue

        denom = max(a, b)
        total += 0.0 if denom == 0 else (b - a) / denom
        counted += 1

    return total / counted if counted else 0.0


def auto_cluster(
    embeddings: Sequence[np.ndarray],
    min_k: int = 2,
    max_k: int = 10,
    max_iter: int = DEFAULT_MAX_ITER,
    rng: Optional[np.random.Generator] = None,
) -> ClusteringResult:
    """Run k-means for every k in [min_k, max_k] and keep the best silhouette.

    max_k is clamped to n - 1; with n <= 2 a single cluster is returned.
    Ties keep the smallest k.
    """
    if min_k <= 0:
        raise ValueError(f"min_k must be positive, got {min_k}")
    rng = rng or make_rng()
    n = len(embeddings)
    if n == 0:
        return ClusteringResult(k=0, assignments=[], centroids=np.zeros((0, 0)), score=0.0)

    max_k = min(max_k, n - 1)
    if n <= 2 or min_k > max_k:
        k = 1 if n <= 2 else max(1, max_k)
        result = kmeans(embeddings, k, max_iter, rng)
        return ClusteringResult(
            k=k,
            assignments=result.assignments,
            centroids=result.centroids,
            score=silhouette(embeddings, result.assignments, k),
        )

    best: Optional[ClusteringResult] = None
    for k in range(min_k, max_k + 1):
        result = kmeans(embeddings, k, max_iter, rng)
        score = silhouette(embeddings, result.assignments, k)
        logger.debug(
            f"Clustering: k={k} silhouette={score:.3f} "
            f"({result.iterations} iterations)"
        )
        if best is None or score > best.score:
            best = ClusteringResult(
                k=k,
                assignments=result.assignments,
                centroids=result.centroids,
                score=score,
            )

    logger.info(f"Clustering: selected k={best.k} (silhouette={best.score:.3f})")
    return best


def select_optimal_k(
    embeddings: Sequence[np.ndarray],
    min_k: int = 2,
    max_k: int = 10,
    max_iter: int = DEFAULT_MAX_ITER,
    rng: Optional[np.random.Generator] = None,
) -> int:
    """Cluster count with the highest mean silhouette."""
    return auto_cluster(embeddings, min_k, max_k, max_iter, rng).k


def _heading_label(texts: list[str]) -> Optional[str]:
    for text in texts:
        match = _MD_HEADING_RE.search(text)
        if match:
            heading = match.group(1).strip()
            if 3 <= len(heading) <= 60:
                return heading
    return None


def _tag_label(tags: list[str]) -> Optional[str]:
    tags = [t for t in tags if t]
    if not tags:
        return None
    tag = Counter(tags).most_common(1)[0][0]
    words = [w for w in _TAG_SEPARATOR_RE.split(tag) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) or None


def _top_terms(texts: list[str], n: int) -> list[str]:
    freq: Counter[str] = Counter()
    for text in texts:
        for word in _NON_ALNUM_RE.sub("", text.lower()).split():
            if len(word) >= 3 and word not in STOPWORDS:
                freq[word] += 1
    return [w[:1].upper() + w[1:] for w, _ in freq.most_common(n)]


def _term_label(texts: list[str]) -> Optional[str]:
    top = _top_terms(texts, 3)
    return " & ".join(top) if top else None


def _disambiguate(labels: list[str], member_texts: dict[int, list[str]]) -> None:
    """Suffix clusters sharing a label with a term of their own, else a number."""
    counts = Counter(labels[c] for c in member_texts)
    for label, count in counts.items():
        if count < 2:
            continue
        used: set[str] = set()
        for c in sorted(member_texts):
            if labels[c] != label:
                continue
            term = next(
                (
                    t
                    for t in _top_terms(member_texts[c], 5)
                    if t not in used and t.lower() not in label.lower()
                ),
                None,
            )
            if term:
                used.add(term)
                labels[c] = f"{label} ({term})"

    seen: Counter[str] = Counter()
    for c in sorted(member_texts):
        seen[labels[c]] += 1
        if seen[labels[c]] > 1:
            labels[c] = f"{labels[c]} {seen[labels[c]]}"


def label_clusters(
    texts: Sequence[str],
    assignments: Sequence[int],
    domain_tags: Optional[Sequence[str]] = None,
) -> list[str]:
    """Short label per cluster id.

    Priority: first markdown heading (3-60 chars) in a member, then the most
    frequent domain tag title-cased, then the top three terms joined with
    " & ", else "Uncategorized". Clusters that end up with the same label get
    their most frequent unused term appended, e.g. "Notes (Sleep)".

    Returns:
        Labels indexed by cluster id.
    """
    if len(texts) != len(assignments):
        raise ValueError(f"Got {len(texts)} texts for {len(assignments)} assignments")
    if domain_tags is not None and len(domain_tags) != len(texts):
        raise ValueError(f"Got {len(domain_tags)} domain tags for {len(texts)} texts")
    if not assignments:
        return []

    labels = [UNCATEGORIZED] * (max(assignments) + 1)
    members: dict[int, list[int]] = {}
    for i, c in enumerate(assignments):
        members.setdefault(c, []).append(i)

    member_texts = {c: [texts[i] for i in idx] for c, idx in members.items()}
    for c, idx in members.items():
        member_tags = [domain_tags[i] for i in idx] if domain_tags is not None else []
        labels[c] = (
            _heading_label(member_texts[c])
            or _tag_label(member_tags)
            or _term_label(member_texts[c])
            or UNCATEGORIZED
        )

    _disambiguate(labels, member_texts)
    return labels
