"""
Retrieval Client: consumes the NDJSON event stream.

Usage:
    async with RetrievalClient("http://localhost:8000") as client:
        async for event in client.stream(request):
            if event.type == "file":
                ...
"""

import logging
from typing import AsyncIterator, Optional

import httpx

from repolens.retrieval.emitter import NDJSONDecoder
from repolens.schemas.events import is_terminal
from repolens.schemas.retrieval import RetrievalRequest

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/retrieve/stream"


class RetrievalClient:

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0,
    ):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "RetrievalClient":
        return self

    async def __aexit__(self, *exc):
        await self.client.aclose()

    async def stream(self, request: RetrievalRequest) -> AsyncIterator:
        """
        Yields decoded events until the terminal one. Raises
        `httpx.HTTPStatusError` if the server rejects the request up front.
        """
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        decoder = NDJSONDecoder()

        async with self.client.stream("POST", STREAM_PATH, json=payload) as response:
            if response.is_error:
                await response.aread()
                response.raise_for_status()

            async for chunk in response.aiter_bytes():
                for event in decoder.feed(chunk):
                    yield event
                    if is_terminal(event):
                        return

        for event in decoder.close():
            yield event
            if is_terminal(event):
                return
        logger.warning("Stream closed without a terminal event")
