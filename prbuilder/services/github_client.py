"""
GitHub REST API client.

Thin async wrapper over the GitHub v3 REST API covering the git data
(refs, commits, trees, blobs), merges, commit statuses, pull requests,
issue comments and repository contents. No retries: a failed call raises
and the caller decides whether that aborts its pipeline.
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx

from prbuilder.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class GitHubApiError(Exception):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(GitHubApiError):
    """The requested ref, object, pull request or file does not exist."""
    pass


class MergeConflictError(GitHubApiError):
    """A server-side merge could not be completed."""
    pass


class GitHubClient:
    """Async GitHub REST client."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. https://api.github.com or https://git/api/v3
            token: Personal access token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "pull-request-builder",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        start_time = time.time()
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            log_api_call(logger, "github", path, method, error=str(e),
                         duration_ms=(time.time() - start_time) * 1000)
            raise GitHubApiError(f"{method} {path} failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code >= 400:
            message = f"{method} {path} failed: {response.status_code} {response.text}"
            log_api_call(logger, "github", path, method, response.status_code, duration_ms, error=message)
            if response.status_code == 404:
                raise NotFoundError(message, response.status_code)
            if response.status_code == 409 and path.endswith("/merges"):
                raise MergeConflictError(message, response.status_code)
            raise GitHubApiError(message, response.status_code)

        log_api_call(logger, "github", path, method, response.status_code, duration_ms)
        return response

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request("GET", path, params=params)
        return response.json()

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        response = await self._request("POST", path, json=body)
        return response.json() if response.content else None

    # Git data

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        ref = await self._get(f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        return ref["object"]["sha"]

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/git/commits/{sha}")

    async def get_tree(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/git/trees/{sha}")

    async def get_blob_text(self, owner: str, repo: str, sha: str) -> str:
        blob = await self._get(f"/repos/{owner}/{repo}/git/blobs/{sha}")
        return _decode_content(blob)

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        blob = await self._post(
            f"/repos/{owner}/{repo}/git/blobs",
            {"content": content, "encoding": "utf-8"}
        )
        return blob["sha"]

    async def create_tree(self, owner: str, repo: str, entries: List[Dict[str, str]]) -> str:
        tree = await self._post(f"/repos/{owner}/{repo}/git/trees", {"tree": entries})
        return tree["sha"]

    async def create_commit(self, owner: str, repo: str, message: str, tree: str, parents: List[str]) -> str:
        commit = await self._post(
            f"/repos/{owner}/{repo}/git/commits",
            {"message": message, "tree": tree, "parents": parents}
        )
        return commit["sha"]

    async def move_branch(self, owner: str, repo: str, branch: str, sha: str) -> None:
        """Point ``branch`` at ``sha``, creating it or force-updating it."""
        try:
            await self._get(f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        except NotFoundError:
            await self._post(f"/repos/{owner}/{repo}/git/refs", {"ref": f"refs/heads/{branch}", "sha": sha})
            return
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            json={"sha": sha, "force": True}
        )

    async def delete_branch(self, owner: str, repo: str, branch: str) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/git/refs/heads/{branch}")

    async def merge(self, owner: str, repo: str, base: str, head: str, commit_message: str) -> str:
        """
        Merge ``head`` into the branch ``base`` on the server.

        Returns:
            SHA of the tip of ``base`` after the merge
        """
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/merges",
            json={"base": base, "head": head, "commit_message": commit_message}
        )
        if response.status_code == 204:
            # head was already contained in base
            return await self.get_branch_sha(owner, repo, base)
        return response.json()["sha"]

    # Statuses

    async def create_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        state: str,
        context: str,
        description: Optional[str] = None,
        target_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"state": state, "context": context}
        if description is not None:
            body["description"] = description
        if target_url is not None:
            body["target_url"] = target_url
        return await self._post(f"/repos/{owner}/{repo}/statuses/{sha}", body)

    # Pull requests and comments

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/pulls/{number}")

    async def list_pull_requests(self, owner: str, repo: str, per_page: int = 100) -> List[Dict[str, Any]]:
        return await self._paginate(f"/repos/{owner}/{repo}/pulls", {"state": "open"}, per_page)

    async def list_issue_comments(self, owner: str, repo: str, number: int, per_page: int = 100) -> List[Dict[str, Any]]:
        return await self._paginate(f"/repos/{owner}/{repo}/issues/{number}/comments", {}, per_page)

    async def _paginate(self, path: str, params: Dict[str, Any], per_page: int) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._get(path, {**params, "per_page": per_page, "page": page})
            items.extend(batch)
            if len(batch) < per_page:
                return items
            page += 1

    # Contents

    async def list_directory(self, owner: str, repo: str, path: str = "", ref: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"ref": ref} if ref else None
        return await self._get(f"/repos/{owner}/{repo}/contents/{path}", params)

    async def read_file(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> str:
        params = {"ref": ref} if ref else None
        return _decode_content(await self._get(f"/repos/{owner}/{repo}/contents/{path}", params))


def _decode_content(payload: Dict[str, Any]) -> str:
    if payload.get("encoding") == "base64":
        return base64.b64decode(payload["content"]).decode("utf-8")
    return payload["content"]
