from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from repolens.storage.history_store import ChatRecord, HistoryStore, clean_thread_id

THREAD = "3f2b6c1e-8a4d-4e6f-9b21-0c7d5e4a1b90"


@pytest.fixture
def store() -> HistoryStore:
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    store = HistoryStore(engine=engine)
    base = datetime(2024, 6, 1, 12, 0, 0)
    with store.SessionLocal() as session:
        for i in range(7):
            session.add(ChatRecord(
                thread_id=THREAD,
                user_query=f"question {i}",
                bot_response=f"answer {i}",
                context_urls=[f"u/{i}.py"],
                created_at=base + timedelta(minutes=i),
            ))
        session.add(ChatRecord(thread_id="other", user_query="unrelated", created_at=base))
        session.commit()
    yield store
    engine.dispose()


def test_clean_thread_id_extracts_uuid() -> None:
    assert clean_thread_id(f"thread_{THREAD}") == THREAD
    assert clean_thread_id("plain-id") == "plain-id"


async def test_recent_turns_newest_first_and_limited(store: HistoryStore) -> None:
    turns = await store.recent_turns(f"chat-{THREAD}", limit=5)

    assert [t.user_query for t in turns] == [f"question {i}" for i in (6, 5, 4, 3, 2)]
    assert turns[0].context_urls == ["u/6.py"]
    assert turns[0].bot_response == "answer 6"


async def test_unknown_thread_yields_no_turns(store: HistoryStore) -> None:
    assert await store.recent_turns("missing") == []


async def test_database_failure_yields_no_turns(store: HistoryStore) -> None:
    ChatRecord.__table__.drop(store.engine)

    assert await store.recent_turns(THREAD) == []
