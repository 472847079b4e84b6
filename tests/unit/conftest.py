"""
Shared fixtures: in-memory stand-ins for the GitHub and Jenkins clients.
"""

import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

from prbuilder.config import Settings
from prbuilder.services.github_client import MergeConflictError, NotFoundError
from prbuilder.services.jenkins_client import JenkinsError


def repo_payload(owner: str, repo: str) -> Dict[str, Any]:
    return {"name": repo, "full_name": f"{owner}/{repo}", "owner": {"login": owner}}


def pull_payload(
    owner: str,
    repo: str,
    number: int,
    head_sha: str,
    title: str = "Change",
    base_branch: str = "master",
    body: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "number": number,
        "title": title,
        "body": body,
        "base": {"ref": base_branch, "sha": "0" * 40, "repo": repo_payload(owner, repo)},
        "head": {"ref": f"feature-{number}", "sha": head_sha, "repo": repo_payload(owner, repo)},
    }


class FakeGitHub:
    """Keeps repositories in dicts and records every mutation."""

    def __init__(self):
        self.branches: Dict[Tuple[str, str, str], str] = {}
        self.commits: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.trees: Dict[Tuple[str, str, str], List[Dict[str, str]]] = {}
        self.blobs: Dict[Tuple[str, str, str], str] = {}
        self.pulls: Dict[Tuple[str, str, int], Dict[str, Any]] = {}
        self.comments: Dict[Tuple[str, str, int], List[Dict[str, Any]]] = {}
        self.files: Dict[Tuple[str, str, str], str] = {}
        self.statuses: List[Dict[str, Any]] = []
        self.merges: List[Tuple[str, str, str, str]] = []
        self.deleted: List[Tuple[str, str, str]] = []
        self.calls: List[str] = []
        self.conflicting_heads = set()
        self.failing_status = False
        self._counter = itertools.count(1)
        self.closed = False

    def new_sha(self, prefix: str = "f") -> str:
        return f"{prefix}{next(self._counter):039d}"

    # Test setup helpers

    def add_build_repo(self, owner: str, repo: str, branch: str = "master", submodules=(), gitmodules=None) -> str:
        """Create a repository whose head tree holds README.md, .gitmodules and gitlinks."""
        if gitmodules is None:
            gitmodules = "".join(
                f'[submodule "{name}"]\n\tpath = {name}\n\turl = git@git:{owner}/{name}.git\n'
                for name in submodules
            )
        readme_sha = self.new_sha("a")
        self.blobs[(owner, repo, readme_sha)] = "# readme\n"
        gitmodules_sha = self.new_sha("b")
        self.blobs[(owner, repo, gitmodules_sha)] = gitmodules
        entries = [
            {"path": ".gitmodules", "mode": "100644", "type": "blob", "sha": gitmodules_sha},
            {"path": "README.md", "mode": "100644", "type": "blob", "sha": readme_sha},
            {"path": "src", "mode": "040000", "type": "tree", "sha": self.new_sha("d")},
        ]
        for name in submodules:
            entries.append({"path": name, "mode": "160000", "type": "commit", "sha": self.new_sha("c")})
        tree_sha = self.new_sha("e")
        self.trees[(owner, repo, tree_sha)] = entries
        commit_sha = self.new_sha("1")
        self.commits[(owner, repo, commit_sha)] = {"sha": commit_sha, "tree": {"sha": tree_sha}}
        self.branches[(owner, repo, branch)] = commit_sha
        self.files[(owner, repo, ".gitmodules")] = gitmodules
        return commit_sha

    def add_pull(self, owner: str, repo: str, number: int, body: Optional[str] = None,
                 title: str = "Change", base_branch: str = "master") -> Dict[str, Any]:
        self.branches.setdefault((owner, repo, base_branch), self.new_sha("2"))
        payload = pull_payload(owner, repo, number, self.new_sha("3"), title, base_branch, body)
        self.pulls[(owner, repo, number)] = payload
        return payload

    def tree_of_branch(self, owner: str, repo: str, branch: str) -> List[Dict[str, str]]:
        commit = self.commits[(owner, repo, self.branches[(owner, repo, branch)])]
        return self.trees[(owner, repo, commit["tree"]["sha"])]

    # GitHubClient interface

    async def close(self) -> None:
        self.closed = True

    async def get_branch_sha(self, owner, repo, branch):
        try:
            return self.branches[(owner, repo, branch)]
        except KeyError:
            raise NotFoundError(f"No branch {owner}/{repo}/{branch}", 404) from None

    async def get_commit(self, owner, repo, sha):
        return self.commits[(owner, repo, sha)]

    async def get_tree(self, owner, repo, sha):
        return {"sha": sha, "tree": self.trees[(owner, repo, sha)]}

    async def get_blob_text(self, owner, repo, sha):
        return self.blobs[(owner, repo, sha)]

    async def create_blob(self, owner, repo, content):
        sha = self.new_sha("b")
        self.blobs[(owner, repo, sha)] = content
        self.calls.append("create_blob")
        return sha

    async def create_tree(self, owner, repo, entries):
        sha = self.new_sha("e")
        self.trees[(owner, repo, sha)] = entries
        self.calls.append("create_tree")
        return sha

    async def create_commit(self, owner, repo, message, tree, parents):
        sha = self.new_sha("1")
        self.commits[(owner, repo, sha)] = {"sha": sha, "tree": {"sha": tree}, "message": message, "parents": parents}
        self.calls.append("create_commit")
        return sha

    async def move_branch(self, owner, repo, branch, sha):
        self.branches[(owner, repo, branch)] = sha
        self.calls.append("move_branch")

    async def delete_branch(self, owner, repo, branch):
        if self.branches.pop((owner, repo, branch), None) is None:
            raise NotFoundError(f"No branch {owner}/{repo}/{branch}", 404)
        self.deleted.append((owner, repo, branch))

    async def merge(self, owner, repo, base, head, commit_message):
        self.calls.append("merge")
        if head in self.conflicting_heads:
            raise MergeConflictError("Merge conflict", 409)
        sha = self.new_sha("m")
        self.branches[(owner, repo, base)] = sha
        self.merges.append((owner, repo, base, head))
        return sha

    async def create_status(self, owner, repo, sha, state, context, description=None, target_url=None):
        self.calls.append("create_status")
        if self.failing_status:
            raise NotFoundError("Status target missing", 404)
        status = {
            "owner": owner, "repo": repo, "sha": sha, "state": state,
            "context": context, "description": description, "target_url": target_url,
        }
        self.statuses.append(status)
        return status

    async def get_pull_request(self, owner, repo, number):
        try:
            return self.pulls[(owner, repo, number)]
        except KeyError:
            raise NotFoundError(f"No pull request {owner}/{repo}#{number}", 404) from None

    async def list_pull_requests(self, owner, repo, per_page=100):
        return [p for (o, r, _), p in sorted(self.pulls.items()) if (o, r) == (owner, repo)]

    async def list_issue_comments(self, owner, repo, number, per_page=100):
        return self.comments.get((owner, repo, number), [])

    async def list_directory(self, owner, repo, path="", ref=None):
        return [{"path": p, "type": "file"} for (o, r, p) in sorted(self.files) if (o, r) == (owner, repo)]

    async def read_file(self, owner, repo, path, ref=None):
        try:
            return self.files[(owner, repo, path)]
        except KeyError:
            raise NotFoundError(f"No file {owner}/{repo}/{path}", 404) from None


class FakeJenkins:
    """Records triggered builds and submitted descriptions."""

    def __init__(self):
        self.triggered: List[Tuple[str, str]] = []
        self.descriptions: List[Tuple[str, str]] = []
        self.failing_urls = set()
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    async def trigger(self, job_url, sha):
        if job_url in self.failing_urls:
            raise JenkinsError(f"GET {job_url} failed: 500")
        self.triggered.append((job_url, sha))

    async def submit_description(self, build_url, description):
        self.descriptions.append((build_url, description))


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def jenkins():
    return FakeJenkins()


@pytest.fixture
def test_settings():
    return Settings(max_workers=1, github_token="test-token")
