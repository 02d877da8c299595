from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Union

import pytest

from repolens.config import PipelineConfig
from repolens.retrieval.oracle import FileContext, FileRelevance, RelevanceOracleAdapter
from repolens.retrieval.pipeline import RetrievalPipeline
from repolens.retrieval.query_resolver import ContextCheck, QueryResolver
from repolens.retrieval.similarity import CandidateRanker
from repolens.schemas.retrieval import CandidateSource, ConversationTurn

REPO = "https://raw.githubusercontent.com/acme/app/main"


def url(path: str) -> str:
    return f"{REPO}/{path}"


def candidate(path: str, similarity: float, summary: str = "") -> CandidateSource:
    """Candidate whose cosine similarity to the query vector [1, 0] is `similarity`."""
    other = (1.0 - similarity ** 2) ** 0.5
    return CandidateSource(
        url=url(path),
        summary=summary or f"summary of {path}",
        summary_embedding=[similarity, other],
    )


def needed(reasoning: str = "answers it", sufficient: bool = False) -> FileRelevance:
    return FileRelevance(
        needed=True, sufficient_alone=sufficient, reasoning=reasoning, code_fragments=["def f(): ..."]
    )


class FakeEmbedder:
    def __init__(self, vector: Optional[List[float]] = None, error: Optional[Exception] = None):
        self.vector = vector or [1.0, 0.0]
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vector


class FakeOracle:
    """Verdicts keyed by file path; unknown paths are not needed."""

    def __init__(
        self,
        verdicts: Optional[Dict[str, Union[FileRelevance, Exception, dict]]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.verdicts = verdicts or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.completed: List[str] = []
        self.accepted_seen: Dict[str, List[str]] = {}
        self.queries: List[str] = []
        self.contents: Dict[str, str] = {}

    async def judge(self, file: FileContext, query: str, accepted: List[str]):
        self.calls.append(file.path)
        self.contents[file.path] = file.content
        self.queries.append(query)
        self.accepted_seen[file.path] = list(accepted)
        if file.path in self.delays:
            await asyncio.sleep(self.delays[file.path])
        self.completed.append(file.path)
        verdict = self.verdicts.get(file.path)
        if isinstance(verdict, Exception):
            raise verdict
        if verdict is None:
            return FileRelevance(needed=False, sufficient_alone=False, reasoning="unrelated")
        return verdict


class FakeFetcher:
    def __init__(self, contents: Optional[Dict[str, str]] = None, delay: float = 0.0):
        self.contents = contents or {}
        self.delay = delay
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> str:
        self.fetched.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.contents.get(url, f"# contents of {url}")


class FakeJudge:
    def __init__(self, enough: bool = True, error: Optional[Exception] = None, delay: float = 0.0):
        self.enough = enough
        self.error = error
        self.delay = delay
        self.calls = 0

    async def has_context(self, query: str) -> ContextCheck:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return ContextCheck(has_enough_context=self.enough, reasoning="fake")


class FakeRewriter:
    def __init__(self, result: str = "rewritten query", error: Optional[Exception] = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def rewrite(self, history: str, query: str) -> str:
        self.calls.append((history, query))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class FakeHistoryStore:
    def __init__(self, turns: Optional[List[ConversationTurn]] = None, delay: float = 0.0):
        self.turns = turns or []
        self.delay = delay
        self.calls: List[tuple] = []

    async def recent_turns(self, thread_id: str, limit: int = 5) -> List[ConversationTurn]:
        self.calls.append((thread_id, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.turns[:limit]


def make_pipeline(
    oracle: Optional[FakeOracle] = None,
    embedder: Optional[FakeEmbedder] = None,
    judge: Optional[FakeJudge] = None,
    rewriter: Optional[FakeRewriter] = None,
    history_store: Optional[FakeHistoryStore] = None,
    fetcher: Optional[FakeFetcher] = None,
    config: Optional[PipelineConfig] = None,
) -> RetrievalPipeline:
    config = config or PipelineConfig(batch_size=3, phase2_cap=30, call_timeout_s=5.0)
    resolver = QueryResolver(
        judge=judge or FakeJudge(),
        rewriter=rewriter or FakeRewriter(),
        history_store=history_store,
        call_timeout_s=config.call_timeout_s,
    )
    return RetrievalPipeline(
        resolver=resolver,
        ranker=CandidateRanker(embedder or FakeEmbedder()),
        oracle=RelevanceOracleAdapter(oracle or FakeOracle(), call_timeout_s=config.call_timeout_s),
        fetcher=fetcher or FakeFetcher(),
        config=config,
    )


async def collect(events) -> list:
    return [event async for event in events]


@pytest.fixture
def five_candidates() -> List[CandidateSource]:
    return [
        candidate("src/auth.py", 0.95),
        candidate("src/session.py", 0.90),
        candidate("src/tokens.py", 0.85),
        candidate("src/db.py", 0.40),
        candidate("README.md", 0.20),
    ]
