import logging
from typing import Dict, Iterable, List

from repolens.schemas.retrieval import EvaluatedSource, sortable_score

logger = logging.getLogger(__name__)


def merge_results(
    phase1: Iterable[EvaluatedSource],
    phase2: Iterable[EvaluatedSource],
) -> List[EvaluatedSource]:
    """
    Union of both phases' needed files, one entry per url.

    The higher score wins; on a tie the phase-2 entry replaces the phase-1
    one. Output is sorted by descending score, undefined scores last.
    """
    unique: Dict[str, EvaluatedSource] = {}

    for source in phase1:
        if not source.needed:
            continue
        current = unique.get(source.url)
        if current is None or sortable_score(source.score) > sortable_score(current.score):
            unique[source.url] = source

    for source in phase2:
        if not source.needed:
            continue
        current = unique.get(source.url)
        if current is None or sortable_score(source.score) >= sortable_score(current.score):
            unique[source.url] = source

    merged = sorted(unique.values(), key=lambda s: sortable_score(s.score), reverse=True)
    logger.debug(f"Merged {len(merged)} unique sources")
    return merged
