"""
Pipeline Builder: wires the collaborators into a RetrievalPipeline.

  request → QueryResolver → CandidateRanker → PhaseController
                 ↑ judge, rewriter,     ↑ embeddings      ↑ oracle, fetcher
                   history store
"""

import logging
from typing import Optional

from repolens.config import PipelineConfig, SystemConfig
from repolens.retrieval.oracle import RelevanceOracle, RelevanceOracleAdapter
from repolens.retrieval.pipeline import RetrievalPipeline
from repolens.retrieval.query_resolver import ContextJudge, QueryResolver, QueryRewriter
from repolens.retrieval.similarity import CandidateRanker
from repolens.storage.content_fetcher import ContentFetcher
from repolens.storage.embedding_driver import EmbeddingDriver
from repolens.storage.history_store import HistoryStore

logger = logging.getLogger(__name__)


def build_history_store() -> Optional[HistoryStore]:
    try:
        return HistoryStore()
    except Exception:
        # Without the store follow-up questions are simply not rewritten.
        logger.warning("⚠️ History store unavailable; query rewriting limited to supplied history.")
        return None


def build_pipeline(config: Optional[PipelineConfig] = None) -> RetrievalPipeline:
    """
    Constructs every collaborator from SystemConfig.
    """
    config = config or SystemConfig.pipeline_config()

    resolver = QueryResolver(
        judge=ContextJudge(),
        rewriter=QueryRewriter(),
        history_store=build_history_store(),
        history_limit=SystemConfig.HISTORY_LIMIT,
        call_timeout_s=config.call_timeout_s,
    )
    ranker = CandidateRanker(EmbeddingDriver(call_timeout_s=config.call_timeout_s))
    oracle = RelevanceOracleAdapter(RelevanceOracle(), call_timeout_s=config.call_timeout_s)

    logger.info(
        f"Retrieval pipeline ready (batch_size={config.batch_size}, "
        f"phase2_cap={config.phase2_cap}, timeout={config.call_timeout_s}s)"
    )
    return RetrievalPipeline(
        resolver=resolver,
        ranker=ranker,
        oracle=oracle,
        fetcher=ContentFetcher(timeout=config.call_timeout_s),
        config=config,
    )
