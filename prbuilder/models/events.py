"""
Inbound event models.

GitHub webhook payloads and Jenkins notification payloads are validated into
these models at the HTTP boundary; anything that does not fit is rejected.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .pull_request import PullRequest, RepoBranch, make_pr_id


class GitHubEventType(str, Enum):
    """Values of the X-GitHub-Event header the service consumes."""

    PING = "ping"
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    ISSUE_COMMENT = "issue_comment"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GitHubUser(_Payload):
    login: str


class GitHubRepository(_Payload):
    name: str
    full_name: str
    owner: GitHubUser


class GitHubBranchRef(_Payload):
    ref: str
    sha: str
    repo: Optional[GitHubRepository] = None  # None when a fork was deleted


class GitHubPullRequest(_Payload):
    number: int
    title: str
    body: Optional[str] = None
    base: GitHubBranchRef
    head: GitHubBranchRef

    def to_pull_request(self) -> PullRequest:
        base_repo = self.base.repo
        if base_repo is None:
            raise ValueError(f"Pull request #{self.number} has no base repository")
        head_repo = self.head.repo or base_repo
        return PullRequest(
            base=RepoBranch(user=base_repo.owner.login, repo=base_repo.name, branch=self.base.ref),
            head=RepoBranch(user=head_repo.owner.login, repo=head_repo.name, branch=self.head.ref),
            number=self.number,
            title=f"PR #{self.number}: {self.title}",
            head_sha=self.head.sha,
            body=self.body,
        )


class PingEvent(_Payload):
    zen: Optional[str] = None
    hook_id: Optional[int] = None


class PushEvent(_Payload):
    ref: str
    repository: GitHubRepository


class PullRequestEvent(_Payload):
    action: str
    pull_request: GitHubPullRequest
    repository: Optional[GitHubRepository] = None


class GitHubIssue(_Payload):
    number: int


class GitHubComment(_Payload):
    body: str = ""


class IssueCommentEvent(_Payload):
    action: Optional[str] = None
    issue: GitHubIssue
    comment: GitHubComment
    repository: GitHubRepository

    @property
    def pr_id(self) -> str:
        return make_pr_id(self.repository.owner.login, self.repository.name, self.issue.number)


GitHubEvent = Union[PingEvent, PushEvent, PullRequestEvent, IssueCommentEvent]

EVENT_MODELS = {
    GitHubEventType.PING: PingEvent,
    GitHubEventType.PUSH: PushEvent,
    GitHubEventType.PULL_REQUEST: PullRequestEvent,
    GitHubEventType.ISSUE_COMMENT: IssueCommentEvent,
}


class BuildPhase(str, Enum):
    """Phases reported by the Jenkins notification plugin."""

    QUEUED = "QUEUED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FINALIZED = "FINALIZED"


class BuildParameters(_Payload):
    sha1: Optional[str] = None


class JenkinsBuild(_Payload):
    phase: BuildPhase
    status: Optional[str] = None
    full_url: Optional[str] = None
    number: Optional[int] = None
    parameters: BuildParameters = BuildParameters()


class JenkinsNotification(_Payload):
    """Payload posted by the Jenkins notification plugin."""

    name: str
    build: JenkinsBuild
