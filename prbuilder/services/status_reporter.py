"""
Status Reporter component.

Sets commit statuses on the primary pull request of a build, one status
context per Jenkins job.
"""

import asyncio
from typing import Optional

from prbuilder.models.build_config import Job
from prbuilder.models.build_data import BuildData
from prbuilder.services.github_client import GitHubClient
from prbuilder.utils.logging import get_logger

logger = get_logger(__name__)

PENDING = "pending"
SUCCESS = "success"
FAILURE = "failure"


class StatusReporter:
    """Reports build progress as GitHub commit statuses."""

    def __init__(self, github: GitHubClient, context_prefix: str = "Jenkins"):
        self.github = github
        self.context_prefix = context_prefix

    def context_for(self, job_name: str) -> str:
        return f"{self.context_prefix}: {job_name}"

    async def set_status(
        self,
        build_data: BuildData,
        context: str,
        state: str,
        description: Optional[str] = None,
        target_url: Optional[str] = None,
    ) -> None:
        """
        Set a status on the head commit of the primary pull request in ``build_data``.

        See https://docs.github.com/rest/commits/statuses for parameter meanings.
        """
        pr = build_data.primary_pr
        sha = build_data.primary_head_sha
        logger.debug(
            f"Setting {context} to {state} on {pr.base.full_name}@{sha[:8]}",
            extra={"pr_id": pr.id, "config_id": build_data.config.id}
        )
        await self.github.create_status(
            pr.base.user,
            pr.base.repo,
            sha,
            state=state,
            context=context,
            description=description,
            target_url=target_url,
        )

    async def set_job_status(
        self,
        build_data: BuildData,
        job: Job,
        state: str,
        description: Optional[str] = None,
        target_url: Optional[str] = None,
    ) -> None:
        await self.set_status(build_data, self.context_for(job.name), state, description, target_url)

    async def set_pending_status(self, build_data: BuildData, description: str) -> None:
        """Set every job of the build's config to pending; fails if any call fails."""
        await asyncio.gather(*(
            self.set_job_status(build_data, job, PENDING, description)
            for job in build_data.config.jobs
        ))
