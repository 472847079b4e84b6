"""
Build Trigger & Correlator component.

Starts the Jenkins jobs of a config against its synthetic commit and keeps
a table from commit SHA to build context, so that later Jenkins
notifications (which carry the SHA as the ``sha1`` build parameter) can be
matched back to the pull requests they report on.
"""

import asyncio
import time
from typing import Callable, Dict, Optional

from prbuilder.models.build_data import ActiveBuild, BuildData
from prbuilder.models.events import BuildPhase, JenkinsNotification
from prbuilder.services.github_client import GitHubApiError, GitHubClient
from prbuilder.services.jenkins_client import JenkinsClient, JenkinsError
from prbuilder.services.status_reporter import FAILURE, PENDING, SUCCESS, StatusReporter
from prbuilder.utils.logging import get_logger, log_build_event

logger = get_logger(__name__)


class BuildTriggerError(Exception):
    """Raised when none of a config's jobs could be started."""
    pass


class BuildTracker:
    """Owns the active-build correlation table."""

    def __init__(
        self,
        github: GitHubClient,
        jenkins: JenkinsClient,
        status_reporter: StatusReporter,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.github = github
        self.jenkins = jenkins
        self.status_reporter = status_reporter
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._active: Dict[str, ActiveBuild] = {}

    def get(self, sha: str) -> Optional[ActiveBuild]:
        return self._active.get(sha)

    def __len__(self) -> int:
        return len(self._active)

    async def start_builds(self, build_data: BuildData) -> None:
        """
        Trigger every job of the config at the synthetic commit.

        Raises:
            BuildTriggerError: If no job could be triggered
        """
        await self.evict_expired()
        sha = build_data.new_commit_sha
        if sha is None:
            raise ValueError(f"Build of {build_data.config.id} has no synthetic commit")
        jobs = build_data.config.jobs
        active = ActiveBuild(
            build_data=build_data,
            created_at=self._clock(),
            triggered_jobs={job.name for job in jobs},
        )
        self._active[sha] = active

        results = await asyncio.gather(
            *(self._trigger(job.url, sha) for job in jobs),
            return_exceptions=True,
        )
        for error in results:
            if isinstance(error, BaseException) and not isinstance(error, JenkinsError):
                self._active.pop(sha, None)
                raise error
        # A job that never started will never report completion
        for job, result in zip(jobs, results):
            if isinstance(result, JenkinsError):
                active.triggered_jobs.discard(job.name)
        if not active.triggered_jobs:
            self._active.pop(sha, None)
            await self.delete_branches(build_data)
            raise BuildTriggerError(f"Could not start any job of {build_data.config.id}")
        log_build_event(logger, "started", build_data.config.id, build_data.primary_pr.id, sha)

        if active.finished and self._active.pop(sha, None) is not None:
            log_build_event(logger, "completed", build_data.config.id, build_data.primary_pr.id, sha)
            await self.delete_branches(build_data)

    async def _trigger(self, url: str, sha: str) -> None:
        logger.info(f"Starting a build at {url}", extra={"sha": sha})
        try:
            await self.jenkins.trigger(url, sha)
        except JenkinsError as e:
            logger.error(f"Couldn't start build at {url}: {e}", extra={"sha": sha})
            raise

    async def on_notification(self, notification: JenkinsNotification) -> None:
        """Handle a Jenkins notification; notifications for unknown SHAs are ignored."""
        await self.evict_expired()
        build = notification.build
        logger.debug(f"Received {build.phase.value} notification for {notification.name}")

        sha = build.parameters.sha1
        active = self._active.get(sha) if sha else None
        if active is None:
            logger.debug(f"No active build for {sha}; ignoring", extra={"sha": sha})
            return
        build_data = active.build_data
        logger.debug(f"Corresponding build config is {build_data.config.id}",
                     extra={"config_id": build_data.config.id, "sha": sha})
        context = self.status_reporter.context_for(notification.name)

        if build.phase == BuildPhase.STARTED:
            await self.status_reporter.set_status(
                build_data, context, PENDING, "Building with Jenkins", build.full_url
            )
            if build.full_url:
                await self._submit_description(build.full_url, build_data.primary_pr.title)

        elif build.phase == BuildPhase.COMPLETED:
            logger.info(f"Job {notification.name} status is {build.status}",
                        extra={"config_id": build_data.config.id, "sha": sha})
            if notification.name in active.triggered_jobs:
                active.completed_jobs.add(notification.name)
            else:
                logger.warning(f"Job {notification.name} is not a started job of {build_data.config.id}",
                               extra={"config_id": build_data.config.id, "sha": sha})
            if active.finished:
                self._active.pop(sha, None)
            state = SUCCESS if build.status == "SUCCESS" else FAILURE
            try:
                await self.status_reporter.set_status(
                    build_data, context, state, f"Jenkins build status: {build.status}", build.full_url
                )
            finally:
                if active.finished:
                    log_build_event(logger, "completed", build_data.config.id, build_data.primary_pr.id, sha)
                    await self.delete_branches(build_data)

    async def _submit_description(self, build_url: str, description: str) -> None:
        try:
            await self.jenkins.submit_description(build_url, description)
        except JenkinsError as e:
            logger.warning(f"Couldn't set description of {build_url}: {e}")

    async def delete_branches(self, build_data: BuildData) -> None:
        """Delete the build branch and every submodule branch; failures are only logged."""
        repo = build_data.config.repo
        branches = list(build_data.submodule_branches)
        if build_data.build_branch_name:
            branches.insert(0, repo.model_copy(update={"branch": build_data.build_branch_name}))
        await asyncio.gather(*(
            self._delete_branch(b.user, b.repo, b.branch) for b in branches
        ))

    async def _delete_branch(self, user: str, repo: str, branch: str) -> None:
        try:
            await self.github.delete_branch(user, repo, branch)
            logger.debug(f"Branch {user}/{repo}/{branch} was deleted")
        except GitHubApiError as e:
            logger.warning(f"Branch {user}/{repo}/{branch} was not deleted: {e}")

    async def evict_expired(self) -> None:
        """Drop builds whose jobs never reported completion within the TTL."""
        now = self._clock()
        expired = [(sha, active) for sha, active in self._active.items()
                   if now - active.created_at > self.ttl_seconds]
        for sha, _ in expired:
            del self._active[sha]
        for sha, active in expired:
            logger.warning(f"Build of {active.build_data.config.id} at {sha[:8]} expired",
                           extra={"config_id": active.build_data.config.id, "sha": sha})
            await self.delete_branches(active.build_data)
