"""
Retrieval Schemas: The Read-Path Data Contract.

Defines the typed containers flowing through the pipeline:
Candidate list → Ranker → Relevance Oracle → Aggregator → Stream.

Field names serialize as camelCase on the wire; Python code uses snake_case.
"""

import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every model that crosses the HTTP boundary."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CandidateSource(WireModel):
    """One repository file eligible for retrieval."""
    url: str = Field(..., min_length=1, description="Unique key of the file")
    summary: str = Field(
        "",
        validation_alias=AliasChoices("summary", "codeSummary", "summaryText"),
        description="Precomputed natural-language summary of the file",
    )
    summary_embedding: Optional[List[float]] = Field(
        None, description="Embedding of the summary; null excludes the file"
    )
    score: Optional[float] = Field(None, description="Cosine similarity, set by the ranker")


class FrequencyHint(WireModel):
    """How often a url was useful in earlier interactions."""
    url: str = Field(..., min_length=1)
    frequency: int = Field(0, ge=0)


class ConversationTurn(WireModel):
    """A previous question/answer pair from the same thread."""
    user_query: str
    bot_response: str = ""
    timestamp: Optional[datetime] = None
    context_urls: List[str] = Field(default_factory=list)


class RelevanceVerdict(WireModel):
    """
    The oracle's decision for one (file, query) pair.
    Always build it through `from_raw` when the payload comes from an LLM.
    """
    needed: bool
    sufficient_alone: bool = False
    reasoning: str = ""
    code_fragments: List[str] = Field(default_factory=list)

    @classmethod
    def error(cls) -> "RelevanceVerdict":
        """Sentinel verdict used whenever the oracle call fails."""
        return cls(needed=False, sufficient_alone=False, reasoning="error", code_fragments=[])

    @classmethod
    def from_raw(cls, payload: Any) -> "RelevanceVerdict":
        """
        Validates an untrusted oracle payload (model instance or dict).
        Anything that does not fit the schema becomes the sentinel verdict.
        """
        if isinstance(payload, cls):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        try:
            return cls.model_validate(payload)
        except ValidationError:
            return cls.error()


class EvaluatedSource(CandidateSource):
    """A ranked candidate together with its verdict and provenance."""
    needed: bool = False
    sufficient_alone: bool = False
    reasoning: str = ""
    code_fragments: List[str] = Field(default_factory=list)
    from_cache: bool = Field(False, description="Evaluated in the cache-priority phase")
    from_fallback: bool = Field(False, description="Evaluated in the ranked fallback phase")
    from_context: bool = Field(False, description="Referenced by the thread's recent turns")

    @classmethod
    def build(
        cls,
        candidate: CandidateSource,
        verdict: RelevanceVerdict,
        from_cache: bool = False,
        from_fallback: bool = False,
        from_context: bool = False,
    ) -> "EvaluatedSource":
        return cls(
            url=candidate.url,
            summary=candidate.summary,
            summary_embedding=candidate.summary_embedding,
            score=candidate.score,
            needed=verdict.needed,
            sufficient_alone=verdict.sufficient_alone,
            reasoning=verdict.reasoning,
            code_fragments=list(verdict.code_fragments),
            from_cache=from_cache,
            from_fallback=from_fallback,
            from_context=from_context,
        )


def sortable_score(score: Optional[float]) -> float:
    """Maps missing or NaN scores to -inf so they always rank last."""
    if score is None or math.isnan(score):
        return float("-inf")
    return score


class RetrievalRequest(WireModel):
    """Everything one pipeline run needs; nothing is kept between runs."""
    query: str = Field(
        ...,
        min_length=1,
        max_length=10_000,
        validation_alias=AliasChoices("query", "message"),
        description="The user's question",
    )
    thread_id: Optional[str] = Field(
        None,
        max_length=200,
        validation_alias=AliasChoices("threadId", "thread_id"),
    )
    candidates: List[CandidateSource] = Field(
        ...,
        validation_alias=AliasChoices("candidates", "summaries"),
        description="Every file of the repository with its summary embedding",
    )
    frequency_hints: List[FrequencyHint] = Field(
        default_factory=list,
        validation_alias=AliasChoices("frequencyHints", "frequency_hints", "urlFrequencyList"),
    )
    history: Optional[List[ConversationTurn]] = Field(
        None, description="Recent turns, newest first; skips the history store when given"
    )
