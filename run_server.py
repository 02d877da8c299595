import logging

import uvicorn

from repolens.config import SystemConfig

# Configure logging to see what's happening
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger("RepoLensRunner")


def main():
    """
    Local runner for the RepoLens retrieval API.
    """
    logger.info(f"🚀 Serving on http://{SystemConfig.API_HOST}:{SystemConfig.API_PORT}")
    uvicorn.run(
        "repolens.api.main:app",
        host=SystemConfig.API_HOST,
        port=SystemConfig.API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
