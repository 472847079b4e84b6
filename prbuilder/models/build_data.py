"""Transient state of one build attempt."""

import time
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .build_config import BuildConfig
from .pull_request import PullRequest, RepoBranch

SUBMODULE_MODE = "160000"
GITMODULES_PATH = ".gitmodules"


class TreeEntry(BaseModel):
    """One entry of a git tree, as returned by the Git Trees API."""

    path: str
    mode: str
    type: str
    sha: str


class BuildData(BaseModel):
    """
    Everything needed to build one config for one set of pull requests.

    Populated in stages: the config and pull requests first, then the base
    branch snapshot and upstream PR data, and finally the synthetic commit
    and the branches created for it.
    """

    config: BuildConfig
    pull_requests: List[PullRequest]

    # Base branch snapshot
    head_commit_sha: Optional[str] = None
    head_tree_sha: Optional[str] = None
    head_tree: List[TreeEntry] = []
    gitmodules: Optional[str] = None

    # Upstream pull request JSON, one per entry of pull_requests
    github_pull_requests: List[Dict[str, Any]] = []

    # Synthetic commit
    new_commit_sha: Optional[str] = None
    build_branch_name: Optional[str] = None
    submodule_branches: List[RepoBranch] = []

    @property
    def primary_pr(self) -> PullRequest:
        return self.pull_requests[0]

    @property
    def primary_head_sha(self) -> str:
        """Head SHA of the primary PR as reported upstream."""
        if self.github_pull_requests:
            return self.github_pull_requests[0]["head"]["sha"]
        if self.primary_pr.head_sha:
            return self.primary_pr.head_sha
        raise ValueError(f"No head SHA known for {self.primary_pr.id}")


class ActiveBuild(BaseModel):
    """An entry of the active-build correlation table."""

    build_data: BuildData
    created_at: float = Field(default_factory=time.monotonic)
    triggered_jobs: Set[str] = set()
    completed_jobs: Set[str] = set()

    @property
    def finished(self) -> bool:
        """Every job that was actually started has reported completion."""
        return self.triggered_jobs <= self.completed_jobs
