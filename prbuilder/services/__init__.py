"""Business logic services package."""

from prbuilder.services.github_client import (
    GitHubClient,
    GitHubApiError,
    NotFoundError,
    MergeConflictError
)
from prbuilder.services.jenkins_client import (
    JenkinsClient,
    JenkinsError
)
from prbuilder.services.graph_store import (
    GraphStore,
    PullRequestNotFoundError
)
from prbuilder.services.config_sync import (
    ConfigSynchronizer,
    ConfigValidationError,
    map_build_config
)
from prbuilder.services.status_reporter import StatusReporter
from prbuilder.services.commit_builder import (
    BranchNamer,
    SyntheticCommitBuilder
)
from prbuilder.services.build_tracker import (
    BuildTracker,
    BuildTriggerError
)
from prbuilder.services.resolver import (
    BuildResolver,
    CycleDetectedError
)
from prbuilder.services.orchestrator import (
    Orchestrator,
    UnknownEventError,
    get_orchestrator
)

__all__ = [
    'GitHubClient',
    'GitHubApiError',
    'NotFoundError',
    'MergeConflictError',
    'JenkinsClient',
    'JenkinsError',
    'GraphStore',
    'PullRequestNotFoundError',
    'ConfigSynchronizer',
    'ConfigValidationError',
    'map_build_config',
    'StatusReporter',
    'BranchNamer',
    'SyntheticCommitBuilder',
    'BuildTracker',
    'BuildTriggerError',
    'BuildResolver',
    'CycleDetectedError',
    'Orchestrator',
    'UnknownEventError',
    'get_orchestrator'
]
