"""Per-job operator log published to Redis."""

import json
from typing import Iterable

from redis.asyncio import Redis


class JobLogPublisher:
    """Publish a job's log lines for operators.

    Lines are appended to a Redis list (readable after the fact) and
    announced on a channel of the same name (for live dashboards).
    """

    def __init__(self, redis_client: Redis, prefix: str = "followup:log:"):
        self.redis_client = redis_client
        self.prefix = prefix

    async def publish(self, job_id: str, lines: Iterable[str], status: str):
        """Publish the final log for a job."""
        lines = list(lines)
        key = f"{self.prefix}{job_id}"

        if lines:
            await self.redis_client.rpush(key, *lines)

        payload = {
            "job_id": job_id,
            "status": status,
            "lines": len(lines),
        }
        await self.redis_client.publish(key, json.dumps(payload))
