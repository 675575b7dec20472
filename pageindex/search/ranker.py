"""Exact cosine-similarity ranking over stored chunk vectors."""

from __future__ import annotations

from typing import Hashable, Iterable, List, NamedTuple, Sequence, Tuple, Union

import numpy as np

from ..logging import get_logger
from ..models import SimilarityResult

logger = get_logger("ranker")


class Candidate(NamedTuple):
    """A stored chunk vector to score against a query."""

    source_id: Hashable
    chunk_index: int
    vector: Sequence[float]


CandidateLike = Union[Candidate, Tuple[Hashable, Sequence[float]], Tuple[Hashable, int, Sequence[float]]]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; ``0.0`` if either is all zeros."""
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise ValueError(f"Vector dimensions must match: {left.shape} vs {right.shape}")
    magnitude = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if magnitude == 0.0:
        return 0.0
    score = float(np.dot(left, right)) / magnitude
    return max(-1.0, min(1.0, score))


def rank(query: Sequence[float], candidates: Iterable[CandidateLike], k: int) -> List[SimilarityResult]:
    """Score every candidate against ``query`` and return the best ``k``.

    Sorting is stable, so equal scores keep the candidates' input order. Candidates
    whose dimension differs from the query are skipped.
    """
    if k <= 0:
        return []
    query_vector = np.asarray(query, dtype=np.float64)
    results: List[SimilarityResult] = []
    skipped = 0
    for candidate in candidates:
        source_id, chunk_index, vector = _unpack(candidate)
        candidate_vector = np.asarray(vector, dtype=np.float64)
        if candidate_vector.shape != query_vector.shape:
            skipped += 1
            continue
        results.append(
            SimilarityResult(
                source_id=source_id,
                chunk_index=chunk_index,
                score=cosine_similarity(query_vector, candidate_vector),
            )
        )
    if skipped:
        logger.debug("Skipped %d candidate(s) with mismatched dimensions", skipped)
    results.sort(key=lambda result: result.score, reverse=True)
    return results[:k]


def _unpack(candidate: CandidateLike) -> Tuple[Hashable, int, Sequence[float]]:
    if isinstance(candidate, Candidate):
        return candidate.source_id, candidate.chunk_index, candidate.vector
    if len(candidate) == 3:
        source_id, chunk_index, vector = candidate  # type: ignore[misc]
        return source_id, int(chunk_index), vector
    if len(candidate) == 2:
        source_id, vector = candidate  # type: ignore[misc]
        return source_id, 0, vector
    raise ValueError(f"Candidates must be (id, vector) or (id, chunk_index, vector), got {len(candidate)} items")


__all__ = ["Candidate", "cosine_similarity", "rank"]
