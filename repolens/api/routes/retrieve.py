"""
Retrieve Routes: stream the files needed to answer a question.

POST /api/v1/retrieve/stream  NDJSON stream of pipeline events
"""

import logging
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from repolens.api.schemas import RetrieveRequest
from repolens.retrieval.emitter import StreamEmitter
from repolens.retrieval.pipeline import RetrievalPipeline

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/retrieve", tags=["retrieve"])

# Module-level pipeline reference, set by main.py
_pipeline: RetrievalPipeline = None


def set_pipeline(pipeline: RetrievalPipeline):
    global _pipeline
    _pipeline = pipeline


@router.post("/stream")
async def retrieve_stream(body: RetrieveRequest, request: Request) -> StreamingResponse:
    """
    Streams `rewrite`, `file`, `batch` events as they happen, then exactly
    one `final` or `error` event. A client disconnect cancels the pipeline.
    """
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Retrieval pipeline not initialized")

    request_id = uuid4().hex[:6]
    logger.info(
        f"[{request_id}] Retrieve: {len(body.candidates)} candidates, "
        f"{len(body.frequency_hints)} hints, thread={body.thread_id or '-'}"
    )
    emitter = StreamEmitter(_pipeline.stream(body, request_id=request_id), request_id=request_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        lines = emitter.lines()
        try:
            async for line in lines:
                if await request.is_disconnected():
                    logger.info(f"[{request_id}] Client disconnected, aborting pipeline")
                    break
                yield line
        finally:
            await lines.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
    )
