"""
Jenkins client.

Triggers parametrized jobs by URL and annotates builds with a description.
"""

import time
from typing import Optional

import httpx

from prbuilder.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class JenkinsError(Exception):
    """Raised when a Jenkins call fails."""
    pass


class JenkinsClient:
    """Async client for the trigger-by-URL build model."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def trigger(self, job_url: str, sha: str) -> None:
        """Start a build of ``job_url`` with the ``sha1`` parameter set to ``sha``."""
        await self._send("GET", job_url, params={"sha1": sha})

    async def submit_description(self, build_url: str, description: str) -> None:
        """Set the human-readable description of a running build."""
        await self._send(
            "POST",
            f"{build_url.rstrip('/')}/submitDescription",
            data={"description": description, "Submit": "Submit"},
        )

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        start_time = time.time()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log_api_call(logger, "jenkins", url, method, error=str(e),
                         duration_ms=(time.time() - start_time) * 1000)
            raise JenkinsError(f"{method} {url} failed: {e}") from e

        # Jenkins answers form posts with a redirect to the build page
        if response.is_error:
            message = f"{method} {url} failed: {response.status_code}"
            log_api_call(logger, "jenkins", url, method, response.status_code,
                         (time.time() - start_time) * 1000, error=message)
            raise JenkinsError(message)
        log_api_call(logger, "jenkins", url, method, response.status_code, (time.time() - start_time) * 1000)
        return response
