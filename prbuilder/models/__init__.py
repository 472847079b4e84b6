"""Data models for the pull request builder."""

from .api_response import WebhookResponse
from .build_config import BuildConfig, Job, RawBuildConfig
from .build_data import ActiveBuild, BuildData, TreeEntry, GITMODULES_PATH, SUBMODULE_MODE
from .events import (
    BuildPhase,
    EVENT_MODELS,
    GitHubEvent,
    GitHubEventType,
    GitHubPullRequest,
    IssueCommentEvent,
    JenkinsNotification,
    PingEvent,
    PullRequestEvent,
    PushEvent,
)
from .pull_request import PullRequest, RepoBranch, make_pr_id, parse_pr_id

__all__ = [
    # Identity models
    "RepoBranch",
    "PullRequest",
    "make_pr_id",
    "parse_pr_id",
    # Build configuration models
    "Job",
    "BuildConfig",
    "RawBuildConfig",
    # Build state models
    "TreeEntry",
    "BuildData",
    "ActiveBuild",
    "GITMODULES_PATH",
    "SUBMODULE_MODE",
    # Event models
    "GitHubEventType",
    "GitHubEvent",
    "GitHubPullRequest",
    "PingEvent",
    "PushEvent",
    "PullRequestEvent",
    "IssueCommentEvent",
    "BuildPhase",
    "JenkinsNotification",
    "EVENT_MODELS",
    # API response models
    "WebhookResponse",
]
