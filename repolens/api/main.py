"""
FastAPI Application: The RepoLens API Server.

Serves the streaming retrieval endpoint.
Builds the retrieval pipeline and its collaborators on startup.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repolens.api.routes import retrieve
from repolens.api.schemas import HealthResponse
from repolens.config import SystemConfig

logger = logging.getLogger(__name__)

app = FastAPI(
    title="RepoLens API",
    description="Retrieves the source files needed to answer questions about a repository",
    version="0.1.0",
)

# CORS for frontend
_CORS_ORIGINS = os.getenv("REPOLENS_CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["content-type", "authorization"],
)


# ---------------------------------------------------------------------------
# Global exception handler: unhandled errors return a generic 500
# ---------------------------------------------------------------------------
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
async def startup():
    """Build the retrieval pipeline and wire it into the routes."""
    from repolens.retrieval.builder import build_pipeline
    from repolens.utils.tracing import verify_tracing

    logger.info("Initializing RepoLens API...")
    verify_tracing()
    retrieve.set_pipeline(build_pipeline())
    logger.info("RepoLens API ready.")


@app.on_event("shutdown")
async def shutdown():
    """Close HTTP clients and connection pools."""
    logger.info("Shutting down RepoLens API...")
    pipeline = retrieve._pipeline
    if pipeline is not None:
        try:
            await pipeline.fetcher.aclose()
        except Exception as e:
            logger.warning(f"Failed to close content fetcher: {e}")

        store = getattr(pipeline.resolver, "history_store", None)
        if store is not None:
            store.engine.dispose()

    retrieve.set_pipeline(None)
    logger.info("RepoLens API shutdown complete.")


app.include_router(retrieve.router)


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse()
