import asyncio
import logging
from typing import List, Optional

import openai
from langsmith import traceable

from repolens.config import SystemConfig
from repolens.utils.resilience import async_retry_with_backoff, with_timeout

logger = logging.getLogger(__name__)

# Errors worth waiting out; everything else fails the request immediately.
RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    asyncio.TimeoutError,
)


class EmbeddingDriver:
    """
    Embeds the resolved query so it can be compared with the stored
    summary embeddings. Each attempt is bounded by `call_timeout_s`; an
    expired attempt is retried like any other transient error. Any failure
    that survives the retries is fatal for the request, since ranking is
    impossible without the vector.
    """

    def __init__(
        self,
        embeddings=None,
        max_retries: Optional[int] = None,
        backoff_in_seconds: Optional[float] = None,
        call_timeout_s: Optional[float] = None,
    ):
        self.call_timeout_s = call_timeout_s
        self.embeddings = embeddings or SystemConfig.get_embeddings(timeout=call_timeout_s)
        retries = SystemConfig.EMBED_MAX_RETRIES if max_retries is None else max_retries
        backoff = SystemConfig.EMBED_BACKOFF_S if backoff_in_seconds is None else backoff_in_seconds
        self._embed_with_retry = async_retry_with_backoff(
            retries=retries,
            backoff_in_seconds=backoff,
            retry_on=RETRYABLE_ERRORS,
        )(self._embed_once)

    async def _embed_once(self, text: str) -> List[float]:
        return await with_timeout(self.embeddings.aembed_query(text), self.call_timeout_s)

    @traceable(name="Embed Query", run_type="embedding")
    async def embed(self, text: str) -> List[float]:
        vector = await self._embed_with_retry(text)
        if not vector:
            raise ValueError("Embedding service returned an empty vector")
        logger.debug(f"Embedded query ({len(vector)} dims)")
        return list(vector)
