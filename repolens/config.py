"""
System Configuration: The Control Panel
=======================================

1. THE MISSION
--------------
To provide a single source of truth for the retrieval service configuration.
This module bridges environmental secrets (.env), pipeline tuning constants,
and the factory logic for LLM and embedding clients.

2. THE MECHANISM
----------------
- **Secret Management:** Loads environment variables via `dotenv` so API keys
  never live in source control.
- **LLM Factory:** `get_llm` hides the switch between Azure OpenAI and
  standard OpenAI providers.
- **Embedding Factory:** `get_embeddings` does the same for the query
  embedding model.
- **Pipeline Tuning:** `PipelineConfig` is built once from the environment
  and handed to the Phase Controller at construction.

3. THE CONTRACT
---------------
- **Validation:** Credentials are checked when a client is built, raising
  immediately if missing.
- **Consistency:** The judge, rewriter and relevance oracle MUST obtain their
  models through `SystemConfig.get_llm()` so temperature, timeouts and
  retries stay uniform across the pipeline.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from langchain_openai import (
    AzureChatOpenAI,
    AzureOpenAIEmbeddings,
    ChatOpenAI,
    OpenAIEmbeddings,
)
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class PipelineConfig(BaseModel):
    """Tuning knobs for the Phase Controller."""
    batch_size: int = Field(3, gt=0, description="Candidates evaluated concurrently per batch")
    phase2_cap: int = Field(30, gt=0, description="Max needed files collected by the fallback phase")
    call_timeout_s: float = Field(60.0, gt=0, description="Timeout for each external call inside a batch")


class SystemConfig:
    """
    Central configuration for the RepoLens retrieval service.
    Fetches secrets from .env to prevent hardcoding credentials.
    """
    DEPLOYMENT_MODE = os.getenv("DEPLOYMENT_MODE", "OPENAI_DEV")

    # --- Model Selection (role-based: change the value, not the name) ---
    # Context judge + query rewriter: short, constrained outputs.
    REASONING_MODEL = os.getenv("REASONING_MODEL_NAME", "gpt-4.1-mini")
    # Relevance oracle: reads whole files, one call per candidate.
    ORACLE_MODEL = os.getenv("ORACLE_MODEL_NAME", "gpt-4.1-mini")

    # --- Embedding ---
    # Must match the model that produced the stored summary embeddings.
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL_NAME", "text-embedding-3-small")
    EMBED_MAX_RETRIES = int(os.getenv("EMBED_MAX_RETRIES", "3"))
    EMBED_BACKOFF_S = float(os.getenv("EMBED_BACKOFF_S", "1.0"))

    # --- Retrieval Pipeline ---
    RETRIEVAL_BATCH_SIZE = int(os.getenv("RETRIEVAL_BATCH_SIZE", "3"))
    RETRIEVAL_PHASE2_CAP = int(os.getenv("RETRIEVAL_PHASE2_CAP", "30"))
    EXTERNAL_CALL_TIMEOUT_S = float(os.getenv("EXTERNAL_CALL_TIMEOUT_S", "60"))
    HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "5"))

    # --- Content Fetching ---
    GITHUB_DEFAULT_BRANCH = os.getenv("GITHUB_DEFAULT_BRANCH", "main")
    GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

    # --- API Server ---
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # --- Conversation History (written by the chat service, read here) ---
    POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
    POSTGRES_DB = os.getenv("POSTGRES_DB", "repolens")
    POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
    HISTORY_DATABASE_URL = os.getenv(
        "HISTORY_DATABASE_URL",
        f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}"
        f"@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
    )

    @classmethod
    def get_llm(
        cls,
        model_name: str,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        timeout: Optional[int] = None
    ):
        """
        Factory method to get the correct LLM without cluttering class properties.
        """
        common_kwargs = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "request_timeout": timeout,
            "max_retries": 2,
        }

        if cls.DEPLOYMENT_MODE.upper() == "AZURE":
            return AzureChatOpenAI(
                azure_deployment=model_name,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01"),
                azure_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT"),
                api_key=os.getenv("AZURE_OPENAI_API_KEY"),
                **common_kwargs
            )

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("❌ Missing OPENAI_API_KEY in environment.")

        return ChatOpenAI(
            model_name=model_name,
            api_key=api_key,
            **common_kwargs
        )

    @classmethod
    def get_embeddings(cls, timeout: Optional[float] = None):
        """
        Embedding client for queries. Retries are disabled here because
        EmbeddingDriver applies its own backoff policy.
        """
        if cls.DEPLOYMENT_MODE.upper() == "AZURE":
            return AzureOpenAIEmbeddings(
                azure_deployment=cls.EMBEDDING_MODEL,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01"),
                azure_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT"),
                api_key=os.getenv("AZURE_OPENAI_API_KEY"),
                max_retries=0,
                request_timeout=timeout,
            )

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("❌ Missing OPENAI_API_KEY in environment.")

        return OpenAIEmbeddings(
            model=cls.EMBEDDING_MODEL,
            api_key=api_key,
            max_retries=0,
            request_timeout=timeout,
        )

    @classmethod
    def pipeline_config(cls) -> PipelineConfig:
        return PipelineConfig(
            batch_size=cls.RETRIEVAL_BATCH_SIZE,
            phase2_cap=cls.RETRIEVAL_PHASE2_CAP,
            call_timeout_s=cls.EXTERNAL_CALL_TIMEOUT_S,
        )
