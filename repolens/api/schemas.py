"""
API Schemas: Request/Response models for the FastAPI endpoints.
"""

from pydantic import BaseModel

from repolens.schemas.retrieval import RetrievalRequest


class RetrieveRequest(RetrievalRequest):
    """Incoming retrieval request: `{query, threadId?, candidates[], frequencyHints[]}`."""


class HealthResponse(BaseModel):
    status: str = "ok"
