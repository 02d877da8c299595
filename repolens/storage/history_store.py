import asyncio
import logging
import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker
from langsmith import traceable

from repolens.config import SystemConfig
from repolens.schemas.retrieval import ConversationTurn

logger = logging.getLogger(__name__)
Base = declarative_base()

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


# --- ORM MODEL: THE CHAT LOG ---
class ChatRecord(Base):
    """
    One answered question. Rows are written by the chat service;
    the retrieval pipeline only reads them.
    """
    __tablename__ = "chat_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(String, index=True, nullable=False)
    user_query = Column(Text, nullable=False)
    bot_response = Column(Text, default="")
    context_urls = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


def clean_thread_id(thread_id: str) -> str:
    """Client ids sometimes wrap the thread UUID in a prefix; keep only the UUID."""
    match = _UUID_PATTERN.search(thread_id)
    return match.group(0) if match else thread_id


class HistoryStore:
    """
    Read access to recent conversation turns of a thread.
    """

    def __init__(self, database_url: Optional[str] = None, engine=None):
        try:
            self.engine = engine or create_engine(
                database_url or SystemConfig.HISTORY_DATABASE_URL, pool_pre_ping=True
            )
            Base.metadata.create_all(bind=self.engine)
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
            logger.info("✅ Connected to conversation history store")
        except Exception as e:
            logger.error(f"❌ Failed to connect to history store: {e}")
            raise

    def _fetch(self, thread_id: str, limit: int) -> List[ConversationTurn]:
        stmt = (
            select(ChatRecord)
            .where(ChatRecord.thread_id == clean_thread_id(thread_id))
            .order_by(ChatRecord.created_at.desc(), ChatRecord.id.desc())
            .limit(limit)
        )
        with self.SessionLocal() as session:
            rows = session.execute(stmt).scalars().all()
            return [
                ConversationTurn(
                    user_query=row.user_query,
                    bot_response=row.bot_response or "",
                    timestamp=row.created_at,
                    context_urls=list(row.context_urls or []),
                )
                for row in rows
            ]

    @traceable(name="Fetch History", run_type="retriever")
    async def recent_turns(self, thread_id: str, limit: int = 5) -> List[ConversationTurn]:
        """Newest-first turns of the thread. Never raises: failures yield []."""
        try:
            return await asyncio.to_thread(self._fetch, thread_id, limit)
        except Exception as e:
            logger.warning(f"History lookup failed for thread {thread_id}: {e}")
            return []
