"""
Retrieval Pipeline: The Phase Controller.

Turns a question about a repository into the smallest set of files that
grounds an answer, streaming progress as it goes:

  INIT → RESOLVING_QUERY → RANKING → PHASE1_CACHE → PHASE2_FALLBACK → AGGREGATING → DONE
                                                   (ERROR reachable from any state)

Phase 1 (cache): only candidates matched by frequency hints, in batches.
  Each needed file is streamed as soon as its verdict lands. The first batch
  with a needed file ends the phase and skips phase 2; a `sufficient_alone`
  verdict also abandons the rest of its batch.
Phase 2 (fallback): every ranked candidate phase 1 did not evaluate, in
  batches. Stops on the first batch with no needed file or at the cap.
  Sufficiency does not stop phase 2.

Batches run strictly one after another; calls inside a batch run
concurrently and fail independently.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Set
from uuid import uuid4

from repolens.config import PipelineConfig
from repolens.retrieval.aggregator import merge_results
from repolens.retrieval.oracle import FileContext, RelevanceOracleAdapter
from repolens.retrieval.query_resolver import QueryResolver
from repolens.retrieval.similarity import CandidateRanker
from repolens.schemas.events import (
    BatchSummaryEvent,
    ErrorEvent,
    FileEvent,
    FinalEvent,
    PipelineState,
    RewriteEvent,
)
from repolens.schemas.retrieval import (
    CandidateSource,
    EvaluatedSource,
    FrequencyHint,
    RelevanceVerdict,
    RetrievalRequest,
    sortable_score,
)
from repolens.storage.content_fetcher import file_path_from_url
from repolens.utils.resilience import call_with_fallback

logger = logging.getLogger(__name__)


def batched(items: List, size: int) -> List[List]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def select_cache_candidates(
    ranked: List[CandidateSource],
    hints: List[FrequencyHint],
    context_urls: Optional[List[str]] = None,
) -> List[CandidateSource]:
    """
    Ranked candidates whose url contains a hinted url, by descending score.
    Hint frequency, then membership in the thread's context urls, break ties.
    """
    context = set(context_urls or [])
    frequency: Dict[str, int] = {}
    for candidate in ranked:
        matches = [h.frequency for h in hints if h.url and h.url in candidate.url]
        if matches:
            frequency[candidate.url] = max(matches)

    selected = [c for c in ranked if c.url in frequency]
    return sorted(
        selected,
        key=lambda c: (sortable_score(c.score), frequency[c.url], c.url in context),
        reverse=True,
    )


class PhaseController:
    """
    One instance per request. Owns every mutable structure of the run.
    """

    def __init__(
        self,
        resolver: QueryResolver,
        ranker: CandidateRanker,
        oracle: RelevanceOracleAdapter,
        fetcher,
        config: PipelineConfig,
        request_id: Optional[str] = None,
    ):
        self.resolver = resolver
        self.ranker = ranker
        self.oracle = oracle
        self.fetcher = fetcher
        self.config = config
        self.request_id = request_id or uuid4().hex[:6]

        self.state = PipelineState.INIT
        self.effective_query = ""
        self.context_urls: Set[str] = set()
        self.phase1_results: List[EvaluatedSource] = []
        self.phase2_results: List[EvaluatedSource] = []
        self.oracle_calls = 0

    def _transition(self, state: PipelineState):
        logger.debug(f"[{self.request_id}] {self.state.value} → {state.value}")
        self.state = state

    # --------------------------------------------------------------------------
    # Single candidate
    # --------------------------------------------------------------------------

    async def _fetch_content(self, url: str) -> str:
        return await call_with_fallback(
            self.fetcher.fetch(url),
            self.config.call_timeout_s,
            fallback="",
            label=f"[{self.request_id}] Content fetch for {url}",
        )

    async def _evaluate(
        self,
        candidate: CandidateSource,
        accepted: List[str],
        phase: str,
    ) -> EvaluatedSource:
        file_path = file_path_from_url(candidate.url)
        content = await self._fetch_content(candidate.url)
        file = FileContext(path=file_path, content=content, summary=candidate.summary)

        self.oracle_calls += 1
        try:
            verdict = await self.oracle.evaluate(file, self.effective_query, accepted)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{self.request_id}] Oracle adapter raised for {file_path}: {e!r}")
            verdict = RelevanceVerdict.error()

        logger.info(
            f"[{self.request_id}] [{phase}] {file_path}: needed={verdict.needed} "
            f"sufficient={verdict.sufficient_alone} fragments={len(verdict.code_fragments)}"
        )
        return EvaluatedSource.build(
            candidate,
            verdict,
            from_cache=phase == "Phase 1",
            from_fallback=phase == "Phase 2",
            from_context=candidate.url in self.context_urls,
        )

    def _accepted_reasonings(self) -> List[str]:
        accepted = [r for r in self.phase1_results if r.needed] + self.phase2_results
        return [f"{file_path_from_url(r.url)}: {r.reasoning}" for r in accepted]

    # --------------------------------------------------------------------------
    # Phases
    # --------------------------------------------------------------------------

    async def _run_phase1(self, cache: List[CandidateSource]) -> AsyncIterator[FileEvent]:
        """Yields File events; sets `self.phase1_results`."""
        order = {c.url: i for i, c in enumerate(cache)}

        for batch_number, batch in enumerate(batched(cache, self.config.batch_size), start=1):
            logger.info(f"[{self.request_id}] [Phase 1] Processing Batch {batch_number} ({len(batch)} files)")
            accepted = self._accepted_reasonings()
            tasks = [asyncio.create_task(self._evaluate(c, accepted, "Phase 1")) for c in batch]
            batch_results: List[EvaluatedSource] = []
            sufficient = False

            try:
                for next_done in asyncio.as_completed(tasks):
                    result = await next_done
                    batch_results.append(result)
                    if result.needed:
                        yield FileEvent.create(result)
                        if result.sufficient_alone:
                            sufficient = True
                            break
            finally:
                # Abandoned calls are cancelled, never awaited.
                for task in tasks:
                    if not task.done():
                        task.cancel()

            batch_results.sort(key=lambda r: order[r.url])
            self.phase1_results.extend(batch_results)

            if sufficient:
                logger.info(f"[{self.request_id}] [Phase 1] Sufficient file found, skipping the rest")
                return
            if any(r.needed for r in batch_results):
                logger.info(f"[{self.request_id}] [Phase 1] Needed file in batch {batch_number}, stopping")
                return

    async def _run_phase2(self, remaining: List[CandidateSource]) -> AsyncIterator[BatchSummaryEvent]:
        """Yields one BatchSummary per batch; sets `self.phase2_results`."""
        cap = self.config.phase2_cap

        for batch_index, batch in enumerate(batched(remaining, self.config.batch_size), start=1):
            logger.info(f"[{self.request_id}] [Phase 2] Processing Batch {batch_index} ({len(batch)} files)")
            accepted = self._accepted_reasonings()
            results = await asyncio.gather(*(self._evaluate(c, accepted, "Phase 2") for c in batch))

            needed = [r for r in results if r.needed][: cap - len(self.phase2_results)]
            self.phase2_results.extend(needed)
            yield BatchSummaryEvent.create(batch_index, needed, is_final=not needed)

            if not needed:
                logger.info(
                    f"[{self.request_id}] [Phase 2] No needed files in batch {batch_index}, "
                    f"stopping further processing"
                )
                return
            if len(self.phase2_results) >= cap:
                logger.info(f"[{self.request_id}] [Phase 2] Reached maximum number of relevant files ({cap}), stopping")
                return

    # --------------------------------------------------------------------------
    # Entry point
    # --------------------------------------------------------------------------

    async def run(self, request: RetrievalRequest) -> AsyncIterator:
        """
        Async generator of stream events. Always ends with exactly one
        Final or Error event.
        """
        logger.info(f"[{self.request_id}] Starting request processing...")
        try:
            self._transition(PipelineState.RESOLVING_QUERY)
            resolved = await self.resolver.resolve(
                request.query, thread_id=request.thread_id, history=request.history
            )
            self.effective_query = resolved.effective_query
            self.context_urls = set(resolved.context_urls)
            if resolved.rewritten:
                yield RewriteEvent.create(self.effective_query)

            self._transition(PipelineState.RANKING)
            ranked = await self.ranker.rank(self.effective_query, request.candidates)

            proceed_to_phase2 = True
            if request.frequency_hints:
                self._transition(PipelineState.PHASE1_CACHE)
                cache = select_cache_candidates(ranked, request.frequency_hints, resolved.context_urls)
                phase1 = self._run_phase1(cache)
                try:
                    async for event in phase1:
                        yield event
                finally:
                    await phase1.aclose()
                proceed_to_phase2 = not any(r.needed for r in self.phase1_results)

            if proceed_to_phase2:
                self._transition(PipelineState.PHASE2_FALLBACK)
                processed = {r.url for r in self.phase1_results}
                remaining = [c for c in ranked if c.url not in processed]
                phase2 = self._run_phase2(remaining)
                try:
                    async for event in phase2:
                        yield event
                finally:
                    await phase2.aclose()

            self._transition(PipelineState.AGGREGATING)
            sources = merge_results(self.phase1_results, self.phase2_results)
            logger.info(
                f"[{self.request_id}] Done: {len(sources)} sources, {self.oracle_calls} oracle calls"
            )
            self._transition(PipelineState.DONE)
            yield FinalEvent.create(sources, self.effective_query)

        except Exception as e:
            logger.error(f"[{self.request_id}] Error during processing: {e}", exc_info=True)
            self._transition(PipelineState.ERROR)
            yield ErrorEvent.create(str(e) or e.__class__.__name__)


class RetrievalPipeline:
    """
    Long-lived holder of the stateless collaborators. Every call to
    `stream` builds a fresh PhaseController, so no request state is shared.
    """

    def __init__(
        self,
        resolver: QueryResolver,
        ranker: CandidateRanker,
        oracle: RelevanceOracleAdapter,
        fetcher,
        config: PipelineConfig,
    ):
        self.resolver = resolver
        self.ranker = ranker
        self.oracle = oracle
        self.fetcher = fetcher
        self.config = config

    def controller(self, request_id: Optional[str] = None) -> PhaseController:
        return PhaseController(
            resolver=self.resolver,
            ranker=self.ranker,
            oracle=self.oracle,
            fetcher=self.fetcher,
            config=self.config,
            request_id=request_id,
        )

    def stream(self, request: RetrievalRequest, request_id: Optional[str] = None):
        return self.controller(request_id).run(request)
