"""
Graph Store component.

Holds the known pull requests, the "includes" relation between them, the
known build configurations and the repositories they watch. Pure in-memory
state with no I/O; every mutation is a single synchronous step, so it is safe
to share between coroutines on one event loop.
"""

from collections import defaultdict, deque
from typing import DefaultDict, Dict, List, Set

from prbuilder.models.build_config import BuildConfig
from prbuilder.models.pull_request import PullRequest
from prbuilder.utils.logging import get_logger

logger = get_logger(__name__)


class PullRequestNotFoundError(KeyError):
    """Raised when a pull request id is not known to the store."""

    def __init__(self, pr_id: str):
        super().__init__(pr_id)
        self.pr_id = pr_id

    def __str__(self) -> str:
        return f"Unknown pull request {self.pr_id}"


def _closure(start: str, edges: Dict[str, Set[str]]) -> Set[str]:
    """Every id reachable from ``start`` by one or more edges."""
    seen: Set[str] = set()
    queue = deque(edges.get(start, ()))
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        queue.extend(edges.get(current, ()))
    return seen


class GraphStore:
    """In-memory graph of pull requests, includes edges and build configs."""

    def __init__(self):
        self._pull_requests: Dict[str, PullRequest] = {}
        # parent -> children it includes, and the reverse
        self._includes: DefaultDict[str, Set[str]] = defaultdict(set)
        self._included_by: DefaultDict[str, Set[str]] = defaultdict(set)
        self._build_configs: Dict[str, BuildConfig] = {}

    def add_pull_request(self, pr: PullRequest) -> None:
        """Add a pull request, replacing any earlier snapshot with the same id."""
        previous = self._pull_requests.get(pr.id)
        self._pull_requests[pr.id] = pr
        if previous is None:
            logger.debug(f"Added pull request {pr.id}", extra={"pr_id": pr.id})
        elif previous.head_sha != pr.head_sha:
            logger.debug(f"Updated pull request {pr.id} to {pr.head_sha}", extra={"pr_id": pr.id})

    def has_pr(self, pr_id: str) -> bool:
        return pr_id in self._pull_requests

    def get_pr(self, pr_id: str) -> PullRequest:
        try:
            return self._pull_requests[pr_id]
        except KeyError:
            raise PullRequestNotFoundError(pr_id) from None

    def add_pull_request_dependency(self, parent_id: str, child_id: str) -> None:
        """Record that ``parent_id`` includes ``child_id``. Either may be unknown yet."""
        if child_id in self._includes[parent_id]:
            return
        self._includes[parent_id].add(child_id)
        self._included_by[child_id].add(parent_id)
        logger.info(f"{parent_id} includes {child_id}", extra={"pr_id": parent_id})

    def get_including_prs(self, pr_id: str) -> Set[str]:
        """Ids of every pull request that directly or transitively includes ``pr_id``."""
        return _closure(pr_id, self._included_by)

    def get_included_prs(self, pr_id: str) -> Set[str]:
        """``pr_id`` plus every pull request it directly or transitively includes."""
        return {pr_id} | _closure(pr_id, self._includes)

    def add_build_config(self, config: BuildConfig) -> Set[str]:
        """
        Add or replace a build configuration.

        Returns:
            Repositories (``user/repo``) that no config watched before this one
        """
        before = self.watched_repos
        self._build_configs[config.id] = config
        newly_watched = self.watched_repos - before
        logger.info(
            f"Stored build config {config.id} for {config.repo.full_name}",
            extra={"config_id": config.id}
        )
        return newly_watched

    @property
    def build_configs(self) -> List[BuildConfig]:
        return sorted(self._build_configs.values(), key=lambda c: c.id)

    def get_pr_builds(self, pr: PullRequest) -> List[BuildConfig]:
        """Build configs affected by a change to ``pr``'s base branch, ordered by id."""
        return [config for config in self.build_configs if config.affects(pr)]

    @property
    def watched_repos(self) -> Set[str]:
        """Repositories (``user/repo``) whose pull requests are relevant to some config."""
        repos: Set[str] = set()
        for config in self._build_configs.values():
            repos |= config.watched_repos
        return repos
