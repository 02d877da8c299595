"""
Content Fetcher: raw file bytes for the relevance oracle.

Candidate urls come in two shapes:
- GitHub API urls:  https://api.github.com/repos/{owner}/{repo}/contents/{path}
- Raw urls:         https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}

API urls are rewritten to raw urls so no JSON/base64 decoding is needed.
"""

import logging
from typing import Optional

import httpx
from langsmith import traceable

from repolens.config import SystemConfig

logger = logging.getLogger(__name__)

RAW_HOST = "https://raw.githubusercontent.com"


def file_path_from_url(url: str, branch: Optional[str] = None) -> str:
    """Repository-relative path used for display and oracle prompts."""
    if "/contents/" in url:
        return url.split("/contents/", 1)[1].split("?", 1)[0]
    for marker in dict.fromkeys([f"/{branch or SystemConfig.GITHUB_DEFAULT_BRANCH}/", "/main/"]):
        if marker in url:
            return url.split(marker, 1)[1] or url
    return url


def to_raw_url(url: str, branch: Optional[str] = None) -> str:
    if "api.github.com/repos" not in url:
        return url
    branch = branch or SystemConfig.GITHUB_DEFAULT_BRANCH
    repo_part, _, file_part = url.split("/repos/", 1)[1].partition("/contents/")
    file_part = file_part.split("?", 1)[0]
    return f"{RAW_HOST}/{repo_part}/{branch}/{file_part}"


class ContentFetcher:
    """Async HTTP fetcher. Failures degrade to an empty string."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        branch: Optional[str] = None,
    ):
        headers = {}
        if SystemConfig.GITHUB_TOKEN:
            headers["Authorization"] = f"Bearer {SystemConfig.GITHUB_TOKEN}"
        self.client = client or httpx.AsyncClient(
            timeout=timeout, headers=headers, follow_redirects=True
        )
        self.branch = branch

    @traceable(name="Fetch File", run_type="tool")
    async def fetch(self, url: str) -> str:
        raw_url = to_raw_url(url, self.branch)
        try:
            response = await self.client.get(raw_url)
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching {raw_url}: {e}")
            return ""

    async def aclose(self):
        await self.client.aclose()
