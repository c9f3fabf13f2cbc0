"""Abandoned-job detection via Redis."""

import logging
from typing import Optional

from redis.asyncio import Redis

from ..utils.errors import JobCancelled

logger = logging.getLogger(__name__)


class CancellationFlag:
    """Checks whether the queue has marked a job as abandoned.

    Upstream (timeouts, worker-crash sweeps, operators) abandons a job by
    setting ``{prefix}{job_id}``; the pipeline polls before every suspend point.
    """

    def __init__(self, redis_client: Redis, job_id: str, prefix: str = "followup:abandoned:"):
        self.redis_client = redis_client
        self.job_id = job_id
        self.key = f"{prefix}{job_id}"

    async def is_cancelled(self) -> bool:
        return bool(await self.redis_client.exists(self.key))


async def raise_if_cancelled(cancellation: Optional[CancellationFlag], where: str) -> None:
    """Abort with JobCancelled if the job was abandoned."""
    if cancellation is None:
        return
    if await cancellation.is_cancelled():
        logger.warning(
            f"[cancellation] Job {getattr(cancellation, 'job_id', '?')} abandoned before {where}"
        )
        raise JobCancelled(f"Job cancelled before {where}")
