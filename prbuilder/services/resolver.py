"""
Build Closure Resolver component.

Decides which build configs to run for a pull request event. Pull requests
that include the changed pull request are resolved first, since their
synthetic commits contain its change; each config is then built once, by
the first resolution that reaches it.
"""

import asyncio
from typing import Dict, List, Optional, Set

from pydantic import ValidationError

from prbuilder.models.build_config import BuildConfig
from prbuilder.models.events import GitHubPullRequest
from prbuilder.models.pull_request import PullRequest, parse_pr_id
from prbuilder.services.build_tracker import BuildTracker
from prbuilder.services.commit_builder import SyntheticCommitBuilder
from prbuilder.services.github_client import GitHubApiError, GitHubClient
from prbuilder.services.graph_store import GraphStore
from prbuilder.utils.logging import get_logger

logger = get_logger(__name__)


class CycleDetectedError(Exception):
    """Raised when the includes relation loops back onto the pull request being resolved."""

    def __init__(self, path: List[str], pr_id: str):
        super().__init__(f"Include cycle: {' -> '.join(path + [pr_id])}")
        self.path = path
        self.pr_id = pr_id


class Resolution:
    """Bookkeeping shared by one top-level ``build_pull_request`` call and its recursion."""

    def __init__(self):
        self.path: List[str] = []
        self.resolved: Dict[str, Set[str]] = {}
        # configs some level has taken on, whether or not its build succeeded
        self.claimed: Set[str] = set()


class BuildResolver:
    """Resolves and runs the build closure of a pull request."""

    def __init__(
        self,
        store: GraphStore,
        github: GitHubClient,
        commit_builder: SyntheticCommitBuilder,
        tracker: BuildTracker,
    ):
        self.store = store
        self.github = github
        self.commit_builder = commit_builder
        self.tracker = tracker

    async def build_pull_request(self, pr_id: str, resolution: Optional[Resolution] = None) -> Set[str]:
        """
        Build every config affected by ``pr_id`` and by the pull requests including it.

        Returns:
            Ids of the configs whose builds were started by this call or its recursion

        Raises:
            PullRequestNotFoundError: If ``pr_id`` is unknown
            CycleDetectedError: If ``pr_id`` is already being resolved further up
        """
        if resolution is None:
            resolution = Resolution()
        if pr_id in resolution.path:
            raise CycleDetectedError(resolution.path, pr_id)
        if pr_id in resolution.resolved:
            return resolution.resolved[pr_id]

        logger.info(f"Received build request for {pr_id}.", extra={"pr_id": pr_id})
        pr = self.store.get_pr(pr_id)

        resolution.path.append(pr_id)
        try:
            already_built: Set[str] = set()
            for including_id in sorted(self.store.get_including_prs(pr_id)):
                try:
                    already_built |= await self.build_pull_request(including_id, resolution)
                except CycleDetectedError as e:
                    logger.error(f"Not building {including_id}: {e}", extra={"pr_id": pr_id})
                except Exception as e:
                    logger.error(f"Building {including_id} failed: {e}", extra={"pr_id": including_id}, exc_info=True)
        finally:
            resolution.path.pop()

        configs = [
            config for config in self.store.get_pr_builds(pr)
            if config.id not in already_built and config.id not in resolution.claimed
        ]
        resolution.claimed.update(config.id for config in configs)

        built = set(already_built)
        if configs:
            pull_requests = await self._included_pull_requests(pr)
            results = await asyncio.gather(*(self._build_config(config, pull_requests) for config in configs))
            built.update(config_id for config_id in results if config_id is not None)

        resolution.resolved[pr_id] = built
        return built

    async def _included_pull_requests(self, pr: PullRequest) -> List[PullRequest]:
        """The triggering pull request followed by every pull request it includes."""
        included = sorted(self.store.get_included_prs(pr.id) - {pr.id})
        resolved = [pr]
        for child_id in included:
            child = await self._get_or_fetch(child_id)
            if child is not None:
                resolved.append(child)
        return resolved

    async def _get_or_fetch(self, pr_id: str) -> Optional[PullRequest]:
        """Look a pull request up in the store, fetching it from GitHub if it was only referenced."""
        if self.store.has_pr(pr_id):
            return self.store.get_pr(pr_id)
        user, repo, number = parse_pr_id(pr_id)
        try:
            payload = await self.github.get_pull_request(user, repo, number)
            pr = GitHubPullRequest.model_validate(payload).to_pull_request()
        except (GitHubApiError, ValidationError, ValueError) as e:
            logger.error(f"Couldn't fetch included pull request {pr_id}: {e}", extra={"pr_id": pr_id})
            return None
        self.store.add_pull_request(pr)
        return pr

    async def _build_config(self, config: BuildConfig, pull_requests: List[PullRequest]) -> Optional[str]:
        """Run the build pipeline of one config; failures are logged and yield None."""
        primary = pull_requests[0]
        logger.info(f"Will build {config.id}", extra={"config_id": config.id, "pr_id": primary.id})
        try:
            build_data = await self.commit_builder.build(config, pull_requests)
            await self.tracker.start_builds(build_data)
        except Exception as e:
            logger.error(
                f"Build of {config.id} for {primary.id} failed: {e}",
                extra={"config_id": config.id, "pr_id": primary.id},
                exc_info=True
            )
            return None
        return config.id
