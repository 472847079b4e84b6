"""
Config Synchronizer component.

Reads one JSON file per build configuration from the configuration
repository, validates each record, maps it to a BuildConfig and feeds it
into the graph store. A record that fails validation is skipped on its own.
"""

import asyncio
import json
import re
from typing import Any, Dict, FrozenSet, List, Optional, Set

from pydantic import BaseModel, ValidationError

from prbuilder.models.build_config import BuildConfig, Job, RawBuildConfig
from prbuilder.models.pull_request import RepoBranch
from prbuilder.services.github_client import GitHubApiError, GitHubClient
from prbuilder.services.graph_store import GraphStore
from prbuilder.utils.logging import get_logger

logger = get_logger(__name__)

BUILD_REPO_URL = re.compile(r'^git@[^:/]+:(?P<user>[^/]+)/(?P<repo>[^/]+?)\.git$')
JOB_URL = re.compile(r'/job/(?P<name>[^/]+)/buildWithParameters')

_SUBMODULE_SECTION = re.compile(r'^\s*\[submodule\s+"(?P<name>[^"]+)"\s*\]\s*$')
_SUBMODULE_KEY = re.compile(r'^\s*(?P<key>[A-Za-z]+)\s*=\s*(?P<value>.*?)\s*$')
_SUBMODULE_URL = re.compile(
    r'^(?:git@[^:/]+:|[a-z+]+://[^/]+/|(?:\.\./)+)'
    r'(?:(?P<user>[^/]+)/)?(?P<repo>[^/]+?)(?:\.git)?/?$'
)


class ConfigValidationError(Exception):
    """Raised when a configuration record is rejected."""
    pass


class SyncResult(BaseModel):
    """Outcome of one synchronization pass."""

    configs: List[BuildConfig] = []
    newly_watched: Set[str] = set()


def parse_build_repo_url(repo_url: str) -> Dict[str, str]:
    """
    Validate and parse an SSH-style build repository URL.

    Expected format: git@<host>:<user>/<repo>.git

    Raises:
        ConfigValidationError: If the URL does not match
    """
    match = BUILD_REPO_URL.match(repo_url or "")
    if not match:
        raise ConfigValidationError(f"Unrecognized repository URL: {repo_url!r}")
    return match.groupdict()


def map_jobs(build_urls: List[str]) -> List[Job]:
    """Map trigger URLs to jobs, dropping URLs with no recognizable job name."""
    jobs = []
    for url in build_urls:
        match = JOB_URL.search(url)
        if match:
            jobs.append(Job(name=match.group("name"), url=url))
        else:
            logger.warning(f"Ignoring build URL with no job name: {url}")
    return jobs


def map_build_config(
    name: str,
    record: Dict[str, Any],
    submodules: FrozenSet[RepoBranch] = frozenset(),
) -> BuildConfig:
    """
    Map a raw configuration record to a BuildConfig.

    Args:
        name: Config id (file stem)
        record: Parsed JSON record
        submodules: Submodule branches, when already known

    Raises:
        ConfigValidationError: If the record fails any admission rule
    """
    try:
        raw = RawBuildConfig.model_validate(record)
    except ValidationError as e:
        raise ConfigValidationError(f"Malformed config {name}: {e}") from e

    if raw.disabled:
        raise ConfigValidationError(f"Config {name} is disabled")
    if not raw.submodules:
        raise ConfigValidationError(f"Config {name} does not use submodules")

    repo = parse_build_repo_url(raw.repo_url)
    jobs = map_jobs(raw.pull_request_build_urls)
    if not jobs:
        raise ConfigValidationError(f"Config {name} has no pull request build jobs")

    branch = raw.branch or "master"
    if isinstance(raw.submodules, dict):
        submodules = submodules | _submodules_from_mapping(raw.submodules)

    return BuildConfig(
        id=name,
        repo=RepoBranch(user=repo["user"], repo=repo["repo"], branch=branch),
        jobs=tuple(jobs),
        submodules=submodules,
    )


def _submodules_from_mapping(mapping: Dict[str, str]) -> FrozenSet[RepoBranch]:
    submodules = set()
    for full_name, branch in mapping.items():
        user, _, repo = full_name.partition("/")
        if not user or not repo:
            raise ConfigValidationError(f"Submodule must be 'user/repo': {full_name!r}")
        submodules.add(RepoBranch(user=user, repo=repo, branch=branch))
    return frozenset(submodules)


def parse_gitmodules(text: str) -> List[Dict[str, str]]:
    """
    Parse the text of a ``.gitmodules`` file.

    Returns:
        One dict per ``[submodule "..."]`` section with its keys
        (``path``, ``url``, optional ``branch``) plus ``name``
    """
    sections: List[Dict[str, str]] = []
    current: Optional[Dict[str, str]] = None
    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith(("#", ";")):
            continue
        section = _SUBMODULE_SECTION.match(line)
        if section:
            current = {"name": section.group("name")}
            sections.append(current)
            continue
        key = _SUBMODULE_KEY.match(line)
        if key and current is not None:
            current[key.group("key").lower()] = key.group("value")
    return sections


def submodules_from_gitmodules(text: str, build_repo: RepoBranch) -> FrozenSet[RepoBranch]:
    """
    Resolve the submodules of a build repository from its ``.gitmodules``.

    Relative URLs (``../repo.git``) resolve against the build repository's
    user; submodules without a ``branch`` key track the build branch.
    """
    submodules = set()
    for module in parse_gitmodules(text):
        match = _SUBMODULE_URL.match(module.get("url", ""))
        if not match:
            logger.warning(f"Skipping submodule {module['name']} with unrecognized url {module.get('url')!r}")
            continue
        submodules.add(RepoBranch(
            user=match.group("user") or build_repo.user,
            repo=match.group("repo"),
            branch=module.get("branch") or build_repo.branch,
        ))
    return frozenset(submodules)


class ConfigSynchronizer:
    """Keeps the graph store's build configs in step with the configuration repository."""

    def __init__(self, github: GitHubClient, store: GraphStore, owner: str, repo: str, branch: str = "master"):
        self.github = github
        self.store = store
        self.owner = owner
        self.repo = repo
        self.branch = branch

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def is_config_push(self, full_name: str, ref: str) -> bool:
        """Whether a push to ``full_name`` at ``ref`` changes the configuration."""
        return full_name == self.full_name and ref == f"refs/heads/{self.branch}"

    async def sync(self) -> SyncResult:
        """Re-read every configuration file and store the admitted configs."""
        contents = await self.github.list_directory(self.owner, self.repo, ref=self.branch)
        files = [x for x in contents if x.get("type", "file") == "file" and x["path"].endswith(".json")]
        logger.info(f"{self.full_name} has {len(contents)} files, {len(files)} configs")

        loaded = await asyncio.gather(*(self._load(f["path"]) for f in files))

        result = SyncResult()
        for config in loaded:
            if config is None:
                continue
            result.newly_watched |= self.store.add_build_config(config)
            result.configs.append(config)
        logger.info(f"Synchronized {len(result.configs)} build configs")
        return result

    async def _load(self, path: str) -> Optional[BuildConfig]:
        name = path.rsplit("/", 1)[-1][:-len(".json")]
        try:
            text = await self.github.read_file(self.owner, self.repo, path, ref=self.branch)
            try:
                record = json.loads(text)
            except ValueError as e:
                raise ConfigValidationError(f"Invalid JSON in {path}: {e}") from e
            if not isinstance(record, dict):
                raise ConfigValidationError(f"{path} is not a JSON object")
            config = map_build_config(name, record)
            if record.get("submodules") is True:
                config = config.model_copy(update={"submodules": await self._read_submodules(config)})
            return config
        except ConfigValidationError as e:
            logger.warning(f"Skipping config {path}: {e}", extra={"config_id": name})
        except GitHubApiError as e:
            logger.error(f"Could not load config {path}: {e}", extra={"config_id": name})
        return None

    async def _read_submodules(self, config: BuildConfig) -> FrozenSet[RepoBranch]:
        """Submodules listed in the build repository's ``.gitmodules``; none if it can't be read."""
        repo = config.repo
        try:
            gitmodules = await self.github.read_file(repo.user, repo.repo, ".gitmodules", ref=repo.branch)
        except GitHubApiError as e:
            logger.warning(
                f"Couldn't read .gitmodules of {repo.full_name}/{repo.branch}: {e}; "
                f"config {config.id} only builds its own repository",
                extra={"config_id": config.id}
            )
            return frozenset()
        return submodules_from_gitmodules(gitmodules, repo)
