"""
Orchestrator component.

Owns every piece of process-lifetime state (graph store, branch counter,
active-build table) and consumes inbound events. Each event kind has its own
queue drained by a pool of worker tasks; a worker runs one event's pipeline
to completion before taking the next, and a failing pipeline is logged
without stopping the worker.
"""

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from prbuilder.config import Settings, settings
from prbuilder.models.events import (
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
from prbuilder.services.build_tracker import BuildTracker
from prbuilder.services.commit_builder import BranchNamer, SyntheticCommitBuilder
from prbuilder.services.config_sync import ConfigSynchronizer
from prbuilder.services.github_client import GitHubApiError, GitHubClient
from prbuilder.services.graph_store import GraphStore
from prbuilder.services.jenkins_client import JenkinsClient
from prbuilder.services.markers import find_included_prs, requests_rebuild
from prbuilder.services.resolver import BuildResolver
from prbuilder.services.status_reporter import StatusReporter
from prbuilder.utils.logging import get_logger

logger = get_logger(__name__)

JENKINS_QUEUE = "jenkins"

# pull_request actions that change what a build would contain
BUILD_ACTIONS = {"opened", "reopened", "synchronize"}


class UnknownEventError(ValueError):
    """Raised for an X-GitHub-Event value the service does not consume."""
    pass


class Orchestrator:
    """Wires the components together and processes inbound events."""

    def __init__(
        self,
        config: Settings,
        github: Optional[GitHubClient] = None,
        jenkins: Optional[JenkinsClient] = None,
    ):
        self.settings = config
        self.github = github or GitHubClient(
            config.github_api_url, config.github_token, timeout=config.http_timeout_seconds
        )
        self.jenkins = jenkins or JenkinsClient(timeout=config.http_timeout_seconds)

        self.store = GraphStore()
        self.namer = BranchNamer(config.build_branch_prefix)
        self.status_reporter = StatusReporter(self.github, config.status_context_prefix)
        self.commit_builder = SyntheticCommitBuilder(
            self.github, self.status_reporter, self.namer, config.merge_failure_policy
        )
        self.tracker = BuildTracker(
            self.github, self.jenkins, self.status_reporter, ttl_seconds=config.active_build_ttl_seconds
        )
        self.resolver = BuildResolver(self.store, self.github, self.commit_builder, self.tracker)
        self.config_sync = ConfigSynchronizer(
            self.github, self.store, config.config_repo_owner, config.config_repo_name, config.config_repo_branch
        )

        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            GitHubEventType.PING.value: self.handle_ping,
            GitHubEventType.PUSH.value: self.handle_push,
            GitHubEventType.PULL_REQUEST.value: self.handle_pull_request,
            GitHubEventType.ISSUE_COMMENT.value: self.handle_issue_comment,
            JENKINS_QUEUE: self.handle_jenkins_notification,
        }
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: List[asyncio.Task] = []
        self.running = False

    async def start(self, initial_sync: bool = True) -> None:
        """
        Start the worker pools.

        Args:
            initial_sync: Queue a configuration sync, as if the configuration
                repository had just been pushed
        """
        if self.running:
            raise RuntimeError("Orchestrator is already started.")
        self.running = True
        for kind in self._handlers:
            queue: asyncio.Queue = asyncio.Queue()
            self._queues[kind] = queue
            for index in range(self.settings.max_workers):
                self._workers.append(asyncio.create_task(self._worker(kind, queue), name=f"{kind}-{index}"))
        logger.info(f"Started {len(self._workers)} workers for {len(self._queues)} event queues")
        if initial_sync:
            self._queues[GitHubEventType.PUSH.value].put_nowait(None)

    async def stop(self) -> None:
        """Cancel the workers and close the HTTP clients."""
        self.running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        await self.github.close()
        await self.jenkins.close()
        logger.info("Orchestrator stopped")

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        for queue in self._queues.values():
            await queue.join()

    def submit_github_event(self, event_type: str, payload: Dict[str, Any]) -> GitHubEvent:
        """
        Validate a GitHub webhook payload and queue it.

        Raises:
            UnknownEventError: If ``event_type`` is not consumed
            ValidationError: If the payload does not match the event's shape
        """
        try:
            kind = GitHubEventType(event_type)
        except ValueError:
            raise UnknownEventError(f"Unsupported GitHub event: {event_type!r}") from None
        event = EVENT_MODELS[kind].model_validate(payload)
        self._enqueue(kind.value, event)
        return event

    def submit_jenkins_notification(self, payload: Dict[str, Any]) -> JenkinsNotification:
        """
        Validate a Jenkins notification and queue it.

        Raises:
            ValidationError: If the payload is not a notification
        """
        notification = JenkinsNotification.model_validate(payload)
        self._enqueue(JENKINS_QUEUE, notification)
        return notification

    def _enqueue(self, kind: str, item: Any) -> None:
        if not self.running:
            raise RuntimeError("Orchestrator is not started.")
        self._queues[kind].put_nowait(item)

    async def _worker(self, kind: str, queue: asyncio.Queue) -> None:
        handler = self._handlers[kind]
        while True:
            item = await queue.get()
            try:
                await handler(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing {kind} event: {e}", exc_info=True)
            finally:
                queue.task_done()

    # Event handlers

    async def handle_ping(self, event: PingEvent) -> None:
        logger.info(f"Received ping: {event.zen}")

    async def handle_push(self, event: Optional[PushEvent]) -> None:
        """Re-read the build configs when the configuration repository changes."""
        if event is not None and not self.config_sync.is_config_push(event.repository.full_name, event.ref):
            return
        result = await self.config_sync.sync()
        if result.newly_watched:
            await self.discover_pull_requests(result.newly_watched)

    async def handle_pull_request(self, event: PullRequestEvent) -> None:
        if event.action not in BUILD_ACTIONS and event.action != "edited":
            logger.debug(f"Ignoring pull_request action {event.action}")
            return
        pr = event.pull_request.to_pull_request()
        self.store.add_pull_request(pr)
        self.record_includes(pr.id, pr.body)
        if event.action in BUILD_ACTIONS:
            await self.resolver.build_pull_request(pr.id)

    async def handle_issue_comment(self, event: IssueCommentEvent) -> None:
        if event.action == "deleted":
            return
        self.record_includes(event.pr_id, event.comment.body)
        if requests_rebuild(event.comment.body):
            await self.resolver.build_pull_request(event.pr_id)

    async def handle_jenkins_notification(self, notification: JenkinsNotification) -> None:
        await self.tracker.on_notification(notification)

    # Graph maintenance

    def record_includes(self, parent_id: str, body: Optional[str]) -> None:
        """Add an includes edge for every ``Include <url>`` marker in ``body``."""
        for child_id in find_included_prs(body):
            self.store.add_pull_request_dependency(parent_id, child_id)

    async def discover_pull_requests(self, repos: Iterable[str]) -> None:
        """Load the open pull requests of newly watched repositories and their include markers."""
        await asyncio.gather(*(self._discover_repo(full_name) for full_name in sorted(repos)))

    async def _discover_repo(self, full_name: str) -> None:
        owner, repo = full_name.split("/", 1)
        try:
            pulls = await self.github.list_pull_requests(owner, repo)
        except GitHubApiError as e:
            logger.error(f"Couldn't list pull requests of {full_name}: {e}", extra={"repository": full_name})
            return
        logger.info(f"Found {len(pulls)} open pull requests in {full_name}", extra={"repository": full_name})

        for payload in pulls:
            try:
                pr = GitHubPullRequest.model_validate(payload).to_pull_request()
            except ValidationError as e:
                logger.warning(f"Skipping malformed pull request in {full_name}: {e}")
                continue
            self.store.add_pull_request(pr)
            self.record_includes(pr.id, pr.body)
            try:
                comments = await self.github.list_issue_comments(owner, repo, pr.number)
            except GitHubApiError as e:
                logger.error(f"Couldn't list comments of {pr.id}: {e}", extra={"pr_id": pr.id})
                continue
            for comment in comments:
                self.record_includes(pr.id, comment.get("body"))


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    """
    Get or create the global orchestrator instance.

    Returns:
        Orchestrator instance
    """
    return Orchestrator(settings)
