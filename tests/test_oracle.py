from __future__ import annotations

import asyncio

from langchain_core.messages import HumanMessage, SystemMessage

from repolens.retrieval.oracle import FileContext, FileRelevance, RelevanceOracle, RelevanceOracleAdapter
from repolens.schemas.retrieval import RelevanceVerdict

FILE = FileContext(path="src/auth.py", content="def login(): ...", summary="auth helpers")


class _StaticOracle:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay

    async def judge(self, file, query, accepted):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class _RecordingLLM:
    """Stands in for a LangChain chat model with structured output."""

    def __init__(self, result):
        self.result = result
        self.messages = None

    def with_structured_output(self, schema):
        self.schema = schema
        return self

    async def ainvoke(self, messages):
        self.messages = messages
        return self.result


async def test_valid_verdict_passes_through() -> None:
    adapter = RelevanceOracleAdapter(_StaticOracle(FileRelevance(
        needed=True, sufficient_alone=True, reasoning="defines login", code_fragments=["def login(): ..."]
    )))

    verdict = await adapter.evaluate(FILE, "how does login work?", [])

    assert verdict == RelevanceVerdict(
        needed=True, sufficient_alone=True, reasoning="defines login", code_fragments=["def login(): ..."]
    )


async def test_transport_error_yields_sentinel() -> None:
    adapter = RelevanceOracleAdapter(_StaticOracle(error=ConnectionError("reset")))
    assert await adapter.evaluate(FILE, "q") == RelevanceVerdict.error()


async def test_timeout_yields_sentinel() -> None:
    adapter = RelevanceOracleAdapter(_StaticOracle(FileRelevance(needed=True, sufficient_alone=False, reasoning="x"), delay=1.0), call_timeout_s=0.01)
    assert await adapter.evaluate(FILE, "q") == RelevanceVerdict.error()


async def test_malformed_payload_yields_sentinel() -> None:
    adapter = RelevanceOracleAdapter(_StaticOracle({"relevant": "maybe"}))
    verdict = await adapter.evaluate(FILE, "q")

    assert verdict.needed is False
    assert verdict.reasoning == "error"


async def test_oracle_prompt_carries_file_and_accepted_context() -> None:
    llm = _RecordingLLM(FileRelevance(needed=False, sufficient_alone=False, reasoning="no"))
    oracle = RelevanceOracle(llm=llm)

    await oracle.judge(FILE, "how does login work?", ["src/session.py: stores sessions"])

    system, human_message = llm.messages
    human = human_message.content
    assert isinstance(system, SystemMessage) and isinstance(human_message, HumanMessage)
    assert llm.schema is FileRelevance
    assert "how does login work?" in human
    assert "src/auth.py" in human
    assert "def login(): ..." in human
    assert "- src/session.py: stores sessions" in human
