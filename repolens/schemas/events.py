"""
Stream Event Schemas: The Wire Protocol.

Every progress message the pipeline emits is one of five tagged variants.
On the wire each event is a single JSON object `{"type": ..., "data": {...}}`
on its own line. Exactly one `final` or `error` event ends a stream.
"""

from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from repolens.schemas.retrieval import EvaluatedSource, WireModel


class PipelineState(str, Enum):
    """States of the Phase Controller."""
    INIT = "init"
    RESOLVING_QUERY = "resolving_query"
    RANKING = "ranking"
    PHASE1_CACHE = "phase1_cache"
    PHASE2_FALLBACK = "phase2_fallback"
    AGGREGATING = "aggregating"
    DONE = "done"
    ERROR = "error"


# ==============================================================================
# Payloads
# ==============================================================================

class RewritePayload(WireModel):
    rewritten_query: str


class BatchPayload(WireModel):
    batch_index: int = Field(..., ge=1)
    results: List[EvaluatedSource] = Field(default_factory=list)
    is_final: bool = False


class FinalPayload(WireModel):
    sources: List[EvaluatedSource] = Field(default_factory=list)
    effective_query: str


class ErrorPayload(WireModel):
    message: str


# ==============================================================================
# Events
# ==============================================================================

class RewriteEvent(BaseModel):
    type: Literal["rewrite"] = "rewrite"
    data: RewritePayload

    @classmethod
    def create(cls, query: str) -> "RewriteEvent":
        return cls(data=RewritePayload(rewritten_query=query))


class FileEvent(BaseModel):
    type: Literal["file"] = "file"
    data: EvaluatedSource

    @classmethod
    def create(cls, source: EvaluatedSource) -> "FileEvent":
        return cls(data=source)


class BatchSummaryEvent(BaseModel):
    type: Literal["batch"] = "batch"
    data: BatchPayload

    @classmethod
    def create(cls, batch_index: int, results: List[EvaluatedSource], is_final: bool) -> "BatchSummaryEvent":
        return cls(data=BatchPayload(batch_index=batch_index, results=results, is_final=is_final))


class FinalEvent(BaseModel):
    type: Literal["final"] = "final"
    data: FinalPayload

    @classmethod
    def create(cls, sources: List[EvaluatedSource], effective_query: str) -> "FinalEvent":
        return cls(data=FinalPayload(sources=sources, effective_query=effective_query))


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    data: ErrorPayload

    @classmethod
    def create(cls, message: str) -> "ErrorEvent":
        return cls(data=ErrorPayload(message=message))


StreamEvent = Annotated[
    Union[RewriteEvent, FileEvent, BatchSummaryEvent, FinalEvent, ErrorEvent],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)

TERMINAL_EVENT_TYPES = frozenset({"final", "error"})


def is_terminal(event: BaseModel) -> bool:
    return getattr(event, "type", None) in TERMINAL_EVENT_TYPES
