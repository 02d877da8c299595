"""
Candidate Ranker: orders repository files by summary similarity.

1. The resolved query is embedded once.
2. Every candidate with a summary embedding is scored by cosine similarity.
3. Candidates are sorted by descending score (stable, so equal scores keep
   input order). Undefined scores (zero-length vectors, dimension mismatch)
   sort last.
"""

import logging
import math
from typing import List, Sequence

import numpy as np
from langsmith import traceable

from repolens.schemas.retrieval import CandidateSource, sortable_score

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); NaN when either norm is zero or shapes differ."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape or va.size == 0:
        return math.nan
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0 or not math.isfinite(norm):
        return math.nan
    return float(np.dot(va, vb) / norm)


def rank_candidates(
    query_embedding: Sequence[float],
    candidates: List[CandidateSource],
) -> List[CandidateSource]:
    """
    Scores and sorts candidates. Inputs are not mutated; scored copies are returned.
    Candidates without an embedding are dropped.
    """
    scored = [
        c.model_copy(update={"score": cosine_similarity(query_embedding, c.summary_embedding)})
        for c in candidates
        if c.summary_embedding is not None
    ]
    return sorted(scored, key=lambda c: sortable_score(c.score), reverse=True)


class CandidateRanker:
    """Embeds the effective query, then delegates to `rank_candidates`."""

    def __init__(self, embedding_driver):
        self.embedding_driver = embedding_driver

    @traceable(name="Rank Candidates", run_type="retriever")
    async def rank(self, query: str, candidates: List[CandidateSource]) -> List[CandidateSource]:
        usable = [c for c in candidates if c.summary_embedding is not None]
        if not usable:
            logger.info("No candidates carry a summary embedding; nothing to rank.")
            return []

        query_embedding = await self.embedding_driver.embed(query)
        ranked = rank_candidates(query_embedding, usable)
        logger.info(
            f"Ranked {len(ranked)} candidates "
            f"(skipped {len(candidates) - len(usable)} without embeddings)"
        )
        return ranked
