"""
Synthetic Commit Builder component.

For one build configuration, combines the heads of the included pull
requests into the build repository's submodule tree:

1. Read the base branch head commit, its tree and ``.gitmodules``
2. Read the upstream state (head SHA) of every included pull request
3. Report "pending" for every job of the config
4. In each submodule repository touched by an included pull request, point
   a shared build branch at the base branch head and merge the pull
   request heads into it
5. Write a new tree with the updated submodule entries
6. Commit it on top of the base head
7. Point the shared build branch in the build repository at that commit
"""

import asyncio
import itertools
from typing import Dict, List, Optional, Tuple

from prbuilder.models.build_config import BuildConfig
from prbuilder.models.build_data import BuildData, TreeEntry, GITMODULES_PATH, SUBMODULE_MODE
from prbuilder.models.pull_request import PullRequest, RepoBranch
from prbuilder.services.github_client import GitHubApiError, GitHubClient, NotFoundError
from prbuilder.services.status_reporter import StatusReporter
from prbuilder.utils.logging import get_logger, log_build_event

logger = get_logger(__name__)

MERGE_SKIP = "skip"
MERGE_FAIL = "fail"


class BranchNamer:
    """
    Generates build branch names.

    The counter is shared by every build of the owning orchestrator, so two
    builds of the same pull request never reuse a branch name.
    """

    def __init__(self, prefix: str = "lprb"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def next_name(self, base_branch: str, pr_number: int) -> str:
        return f"{self.prefix}-{base_branch}-{pr_number}-{next(self._counter)}"


def find_submodule_entry(tree: List[TreeEntry], path: str) -> Optional[TreeEntry]:
    """The submodule (gitlink) entry at ``path``, if the tree has one."""
    for entry in tree:
        if entry.mode == SUBMODULE_MODE and entry.path == path:
            return entry
    return None


def build_tree_entries(
    base_tree: List[TreeEntry],
    submodule_shas: Dict[str, str],
    gitmodules_sha: str,
) -> List[Dict[str, str]]:
    """
    Entries of the synthetic tree.

    Every base entry is kept as-is, except submodule entries listed in
    ``submodule_shas`` (pointed at their new commit) and ``.gitmodules``
    (pointed at ``gitmodules_sha``).
    """
    entries = []
    for entry in base_tree:
        sha = entry.sha
        if entry.path == GITMODULES_PATH:
            sha = gitmodules_sha
        elif entry.mode == SUBMODULE_MODE and entry.path in submodule_shas:
            sha = submodule_shas[entry.path]
        entries.append({"path": entry.path, "mode": entry.mode, "type": entry.type, "sha": sha})
    return entries


class SyntheticCommitBuilder:
    """Builds the synthetic commit for one config and a set of pull requests."""

    def __init__(
        self,
        github: GitHubClient,
        status_reporter: StatusReporter,
        namer: BranchNamer,
        merge_failure_policy: str = MERGE_SKIP,
    ):
        self.github = github
        self.status_reporter = status_reporter
        self.namer = namer
        self.merge_failure_policy = merge_failure_policy

    async def build(self, config: BuildConfig, pull_requests: List[PullRequest]) -> BuildData:
        """
        Run every step for ``config``; the first pull request is the primary one.

        Returns:
            BuildData with the new commit, build branch and submodule branches

        Raises:
            NotFoundError: If the base branch or ``.gitmodules`` is missing
            GitHubApiError: If a status, blob, tree, commit or branch call fails,
                or a merge fails under the ``fail`` merge policy
        """
        build_data = BuildData(config=config, pull_requests=pull_requests)
        await self.fetch_tree_and_gitmodules(build_data)
        await self.fetch_github_pull_requests(build_data)
        await self.status_reporter.set_pending_status(build_data, "Preparing Jenkins build")
        await self.create_new_commit(build_data)
        return build_data

    async def fetch_tree_and_gitmodules(self, build_data: BuildData) -> None:
        repo = build_data.config.repo
        head_sha = await self.github.get_branch_sha(repo.user, repo.repo, repo.branch)
        head_commit = await self.github.get_commit(repo.user, repo.repo, head_sha)
        tree_sha = head_commit["tree"]["sha"]
        head_tree = await self.github.get_tree(repo.user, repo.repo, tree_sha)

        entries = [TreeEntry.model_validate(item) for item in head_tree["tree"]]
        gitmodules_entry = next((e for e in entries if e.path == GITMODULES_PATH), None)
        if gitmodules_entry is None:
            raise NotFoundError(f"{repo.full_name}@{head_sha[:8]} has no {GITMODULES_PATH}")

        build_data.head_commit_sha = head_sha
        build_data.head_tree_sha = tree_sha
        build_data.head_tree = entries
        build_data.gitmodules = await self.github.get_blob_text(repo.user, repo.repo, gitmodules_entry.sha)

    async def fetch_github_pull_requests(self, build_data: BuildData) -> None:
        build_data.github_pull_requests = list(await asyncio.gather(*(
            self.github.get_pull_request(pr.base.user, pr.base.repo, pr.number)
            for pr in build_data.pull_requests
        )))

    async def create_new_commit(self, build_data: BuildData) -> None:
        config = build_data.config
        primary = build_data.primary_pr
        branch_name = self.namer.next_name(config.repo.branch, primary.number)
        build_data.build_branch_name = branch_name

        # Pull requests to the same submodule are merged one after another into one branch
        groups: Dict[str, List[Tuple[PullRequest, str]]] = {}
        for pr, upstream in zip(build_data.pull_requests, build_data.github_pull_requests):
            if find_submodule_entry(build_data.head_tree, pr.base.repo) is None:
                logger.debug(f"Submodule {pr.base.repo} not found in {config.id}; skipping",
                             extra={"config_id": config.id, "pr_id": pr.id})
                continue
            groups.setdefault(pr.base.full_name, []).append((pr, upstream["head"]["sha"]))

        try:
            results = await asyncio.gather(
                *(self._merge_into_submodule(build_data, branch_name, prs) for prs in groups.values()),
                return_exceptions=True,
            )

            submodule_shas: Dict[str, str] = {}
            error: Optional[BaseException] = None
            for result in results:
                if isinstance(result, BaseException):
                    error = error or result
                    continue
                path, sha = result
                if sha is not None:
                    submodule_shas[path] = sha
            if error is not None:
                raise error

            repo = config.repo
            gitmodules_sha = await self.github.create_blob(repo.user, repo.repo, build_data.gitmodules or "")
            logger.debug(f"New .gitmodules blob SHA is {gitmodules_sha}", extra={"config_id": config.id})

            tree_sha = await self.github.create_tree(
                repo.user, repo.repo, build_tree_entries(build_data.head_tree, submodule_shas, gitmodules_sha)
            )
            logger.debug(f"New tree SHA is {tree_sha}", extra={"config_id": config.id})

            commit_sha = await self.github.create_commit(
                repo.user, repo.repo, primary.title, tree_sha, [build_data.head_commit_sha]
            )
            logger.info(f"New commit SHA is {commit_sha}; moving {repo.full_name}/{branch_name}",
                        extra={"config_id": config.id, "sha": commit_sha})
            await self.github.move_branch(repo.user, repo.repo, branch_name, commit_sha)
        except Exception:
            await self.delete_submodule_branches(build_data)
            raise
        build_data.new_commit_sha = commit_sha
        log_build_event(logger, "commit created", config.id, primary.id, commit_sha)

    async def delete_submodule_branches(self, build_data: BuildData) -> None:
        """Best-effort removal of the submodule branches of a build that was abandoned."""
        logger.warning(f"Abandoning build of {build_data.config.id}; deleting "
                       f"{len(build_data.submodule_branches)} submodule branches",
                       extra={"config_id": build_data.config.id})
        for branch in build_data.submodule_branches:
            try:
                await self.github.delete_branch(branch.user, branch.repo, branch.branch)
            except GitHubApiError as e:
                logger.warning(f"Branch {branch.full_name}/{branch.branch} was not deleted: {e}")
        build_data.submodule_branches = []

    async def _merge_into_submodule(
        self,
        build_data: BuildData,
        branch_name: str,
        prs: List[Tuple[PullRequest, str]],
    ) -> Tuple[str, Optional[str]]:
        """
        Merge the heads of ``prs`` (all in one repository) into ``branch_name`` there.

        A branch that gets created is recorded on ``build_data`` right away.

        Returns:
            (submodule path, new submodule SHA or None)
        """
        base = prs[0][0].base
        title = build_data.primary_pr.title
        merged_sha: Optional[str] = None
        try:
            base_sha = await self.github.get_branch_sha(base.user, base.repo, base.branch)
            await self.github.move_branch(base.user, base.repo, branch_name, base_sha)
        except GitHubApiError as e:
            self._on_merge_failure(f"Couldn't create {branch_name} in {base.full_name}: {e}", e)
            return base.repo, None
        build_data.submodule_branches.append(RepoBranch(user=base.user, repo=base.repo, branch=branch_name))

        for pr, head_sha in prs:
            logger.info(f"Merging {head_sha[:8]} into {branch_name} in {base.full_name}",
                        extra={"pr_id": pr.id, "repository": base.full_name})
            try:
                merged_sha = await self.github.merge(base.user, base.repo, branch_name, head_sha, title)
            except GitHubApiError as e:
                self._on_merge_failure(f"Couldn't merge {head_sha[:8]} into {base.full_name}: {e}", e)
        return base.repo, merged_sha

    def _on_merge_failure(self, message: str, error: GitHubApiError) -> None:
        if self.merge_failure_policy == MERGE_FAIL:
            logger.error(message)
            raise error
        logger.error(f"{message}; leaving it out of the build")
