import os
import logging
from langsmith import Client

logger = logging.getLogger(__name__)


def verify_tracing() -> bool:
    """
    Checks that LangSmith is configured and reachable.
    Tracing is optional: a missing key only disables it.
    """
    api_key = os.getenv("LANGSMITH_API_KEY") or os.getenv("LANGCHAIN_API_KEY")
    if not api_key:
        logger.info("LangSmith API key not set. Tracing disabled.")
        return False

    try:
        client = Client(api_key=api_key)
        projects = list(client.list_projects(limit=1))
        logger.info(f"✅ LangSmith Connected! Found {len(projects)} existing projects.")
        return True
    except Exception as e:
        logger.error(f"❌ LangSmith Connection Failed: {e}")
        return False
