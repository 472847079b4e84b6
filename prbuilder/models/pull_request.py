"""Pull request and branch identity models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class RepoBranch(BaseModel):
    """A branch in a repository: (user, repo, branch)."""

    model_config = ConfigDict(frozen=True)

    user: str
    repo: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.user}/{self.repo}"


class PullRequest(BaseModel):
    """A pull request as tracked by the graph store."""

    model_config = ConfigDict(frozen=True)

    base: RepoBranch  # target repository and branch
    head: RepoBranch  # source repository and branch
    number: int
    title: str
    head_sha: Optional[str] = None
    body: Optional[str] = None

    @property
    def id(self) -> str:
        return make_pr_id(self.base.user, self.base.repo, self.number)


def make_pr_id(user: str, repo: str, number: int) -> str:
    """Build the globally unique ``user/repo/number`` id of a pull request."""
    return f"{user}/{repo}/{number}"


def parse_pr_id(pr_id: str) -> tuple[str, str, int]:
    """Split a ``user/repo/number`` id into its parts."""
    user, repo, number = pr_id.split("/")
    return user, repo, int(number)
