"""
Query Resolver: turns a follow-up message into a self-contained query.

Flow: context judge → (history fetch → rewrite) → effective query

The resolver never fails a request. A judge failure counts as "enough
context"; a rewriter failure falls back to concatenating the previous user
queries with the current message.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field
from langchain_core.messages import HumanMessage, SystemMessage
from langsmith import traceable

from repolens.config import SystemConfig
from repolens.prompts import PROMPT_CONTEXT_CHECK, PROMPT_QUERY_REWRITE
from repolens.schemas.retrieval import ConversationTurn
from repolens.utils.resilience import call_with_fallback

logger = logging.getLogger(__name__)


# ==============================================================================
# Structured Output Schemas
# ==============================================================================

class ContextCheck(BaseModel):
    """Whether a message can be answered without earlier turns."""
    has_enough_context: bool = Field(description="False if the message depends on previous messages.")
    reasoning: str = Field(description="Short explanation of the decision.")


class QueryRewrite(BaseModel):
    """A standalone version of the user's query."""
    rewritten_query: str = Field(description="The self-contained query.")
    reasoning: str = Field(description="What context was pulled in from the history.")


class ResolvedQuery(BaseModel):
    raw_query: str
    effective_query: str
    context_urls: List[str] = Field(default_factory=list)

    @property
    def rewritten(self) -> bool:
        return self.effective_query != self.raw_query


# ==============================================================================
# Collaborators
# ==============================================================================

class ContextJudge:
    """LLM check: does the message stand on its own?"""

    def __init__(self, llm=None):
        llm = llm or SystemConfig.get_llm(model_name=SystemConfig.REASONING_MODEL, temperature=0.0)
        self.structured_llm = llm.with_structured_output(ContextCheck)

    @traceable(name="Context Check", run_type="tool")
    async def has_context(self, query: str) -> ContextCheck:
        return await self.structured_llm.ainvoke([
            SystemMessage(content=PROMPT_CONTEXT_CHECK),
            HumanMessage(content=f"Message: {query}"),
        ])


class QueryRewriter:
    """LLM rewrite of a follow-up into a standalone query."""

    def __init__(self, llm=None):
        llm = llm or SystemConfig.get_llm(model_name=SystemConfig.REASONING_MODEL, temperature=0.0)
        self.structured_llm = llm.with_structured_output(QueryRewrite)

    @traceable(name="Rewrite Query", run_type="tool")
    async def rewrite(self, history: str, query: str) -> str:
        result: QueryRewrite = await self.structured_llm.ainvoke([
            SystemMessage(content=PROMPT_QUERY_REWRITE),
            HumanMessage(content=f"Conversation History:\n{history}\n\nCurrent Query: {query}"),
        ])
        rewritten = result.rewritten_query.strip()
        if not rewritten:
            raise ValueError("Rewriter returned an empty query")
        return rewritten


# ==============================================================================
# Helpers
# ==============================================================================

def format_history(turns: List[ConversationTurn]) -> str:
    """Newest-first turns rendered oldest-first as a transcript."""
    return "\n\n".join(
        f"User: {t.user_query}\nAssistant: {t.bot_response}" for t in reversed(turns)
    )


def concat_fallback(turns: List[ConversationTurn], query: str) -> str:
    previous = [t.user_query.strip() for t in reversed(turns) if t.user_query.strip()]
    return " ".join(previous + [query.strip()]).strip()


def collect_context_urls(turns: List[ConversationTurn]) -> List[str]:
    """Flattened, order-preserving, deduplicated urls referenced by the turns."""
    return list(dict.fromkeys(url for t in turns for url in t.context_urls))


# ==============================================================================
# Resolver
# ==============================================================================

class QueryResolver:

    def __init__(
        self,
        judge: ContextJudge,
        rewriter: QueryRewriter,
        history_store=None,
        history_limit: int = SystemConfig.HISTORY_LIMIT,
        call_timeout_s: Optional[float] = None,
    ):
        self.judge = judge
        self.rewriter = rewriter
        self.history_store = history_store
        self.history_limit = history_limit
        self.call_timeout_s = call_timeout_s

    async def _check_context(self, query: str) -> bool:
        check = await call_with_fallback(
            self.judge.has_context(query),
            self.call_timeout_s,
            fallback=None,
            label="Context check (assuming the query stands alone)",
        )
        if check is None:
            return True
        logger.info(f"Context check: enough={check.has_enough_context} ({check.reasoning})")
        return bool(check.has_enough_context)

    async def _load_turns(
        self, thread_id: Optional[str], history: Optional[List[ConversationTurn]]
    ) -> List[ConversationTurn]:
        if history:
            return list(history)[: self.history_limit]
        if not thread_id or self.history_store is None:
            return []
        turns = await call_with_fallback(
            self.history_store.recent_turns(thread_id, limit=self.history_limit),
            self.call_timeout_s,
            fallback=[],
            label=f"History fetch for thread {thread_id}",
        )
        return list(turns)[: self.history_limit]

    @traceable(name="Resolve Query", run_type="chain")
    async def resolve(
        self,
        query: str,
        thread_id: Optional[str] = None,
        history: Optional[List[ConversationTurn]] = None,
    ) -> ResolvedQuery:
        """
        Returns the effective query plus the urls the recent turns referenced.
        History is only consulted when the judge says the query is incomplete.
        """
        if await self._check_context(query):
            return ResolvedQuery(raw_query=query, effective_query=query)

        turns = await self._load_turns(thread_id, history)
        if not turns:
            return ResolvedQuery(raw_query=query, effective_query=query)

        context_urls = collect_context_urls(turns)
        effective = await call_with_fallback(
            self.rewriter.rewrite(format_history(turns), query),
            self.call_timeout_s,
            fallback=concat_fallback(turns, query),
            label="Query rewrite (concatenating previous queries)",
        )

        logger.info(f"Query (Rewritten): {effective}")
        return ResolvedQuery(raw_query=query, effective_query=effective, context_urls=context_urls)
