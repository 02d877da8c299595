"""
Relevance Oracle: one LLM judgment per candidate file.

The oracle decides whether a single file's content directly answers the
query. The adapter around it guarantees a typed `RelevanceVerdict` for
every call: transport errors, timeouts and malformed payloads all collapse
into `RelevanceVerdict.error()` so one bad file never aborts a batch.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field
from langchain_core.messages import HumanMessage, SystemMessage
from langsmith import traceable

from repolens.config import SystemConfig
from repolens.prompts import PROMPT_FILE_RELEVANCE, PROMPT_FILE_RELEVANCE_HUMAN
from repolens.schemas.retrieval import RelevanceVerdict
from repolens.utils.resilience import call_with_fallback

logger = logging.getLogger(__name__)


# ==============================================================================
# Structured Output Schema
# ==============================================================================

class FileRelevance(BaseModel):
    """Relevance of one file to the user's query."""
    needed: bool = Field(description="Only true if the file is directly relevant to the query")
    sufficient_alone: bool = Field(description="Whether this file alone is sufficient to fully answer the query")
    reasoning: str = Field(description="Detailed explanation of the decision, including relevance to the query")
    code_fragments: List[str] = Field(
        default_factory=list,
        description=(
            "Only specific code blocks directly relevant to the query, copied verbatim "
            "from the file without any added characters."
        ),
    )


class FileContext(BaseModel):
    path: str
    content: str
    summary: str = ""


# ==============================================================================
# Oracle
# ==============================================================================

class RelevanceOracle:
    """Structured-output LLM call that judges one file."""

    def __init__(self, llm=None):
        llm = llm or SystemConfig.get_llm(model_name=SystemConfig.ORACLE_MODEL, temperature=0.2)
        self.structured_llm = llm.with_structured_output(FileRelevance)

    @traceable(name="Judge File", run_type="tool")
    async def judge(self, file: FileContext, query: str, accepted: List[str]):
        human = PROMPT_FILE_RELEVANCE_HUMAN.format(
            query=query,
            accepted="\n".join(f"- {r}" for r in accepted) or "None",
            file_path=file.path,
            file_summary=file.summary or "(no summary)",
            file_content=file.content or "(content unavailable)",
        )
        return await self.structured_llm.ainvoke([
            SystemMessage(content=PROMPT_FILE_RELEVANCE),
            HumanMessage(content=human),
        ])


class RelevanceOracleAdapter:
    """
    Wraps the oracle with a timeout and the sentinel-verdict policy.
    """

    def __init__(self, oracle: RelevanceOracle, call_timeout_s: Optional[float] = None):
        self.oracle = oracle
        self.call_timeout_s = call_timeout_s

    async def evaluate(
        self,
        file: FileContext,
        query: str,
        accepted_reasonings: Optional[List[str]] = None,
    ) -> RelevanceVerdict:
        raw = await call_with_fallback(
            self.oracle.judge(file, query, list(accepted_reasonings or [])),
            self.call_timeout_s,
            fallback=None,
            label=f"[{file.path}] File relevance check",
        )
        if raw is None:
            return RelevanceVerdict.error()

        verdict = RelevanceVerdict.from_raw(raw)
        if verdict.needed:
            logger.info(f"[{file.path}] Relevant code blocks found: {len(verdict.code_fragments)}")
        return verdict
