"""Build configuration models."""

from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .pull_request import PullRequest, RepoBranch


class Job(BaseModel):
    """A Jenkins job triggered by URL."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class BuildConfig(BaseModel):
    """A named build target: one build repository/branch plus its jobs."""

    model_config = ConfigDict(frozen=True)

    id: str
    repo: RepoBranch
    jobs: Tuple[Job, ...]
    submodules: FrozenSet[RepoBranch] = frozenset()

    def affects(self, pr: PullRequest) -> bool:
        """Whether a change to ``pr``'s base branch feeds into this build."""
        return pr.base == self.repo or pr.base in self.submodules

    @property
    def watched_repos(self) -> FrozenSet[str]:
        """Repositories (``user/repo``) whose pull requests this config builds."""
        return frozenset({self.repo.full_name} | {s.full_name for s in self.submodules})


class RawBuildConfig(BaseModel):
    """A configuration record as stored in the configuration repository."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    repo_url: str = Field(alias="repoUrl")
    branch: Optional[str] = None
    pull_request_build_urls: List[str] = Field(default_factory=list, alias="pullRequestBuildUrls")
    submodules: Union[bool, Dict[str, str], None] = None
    disabled: bool = False
