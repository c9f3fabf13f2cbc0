"""Follow-up extraction worker."""

import logging
from typing import Optional

from celery import Task
from celery.signals import worker_process_init, worker_process_shutdown
from pydantic import ValidationError
from redis.asyncio import Redis

from .celery_app import celery_app
from ..config import settings
from ..lib import CancellationFlag, JobLogPublisher
from ..pipeline import FollowUpPipeline, FollowUpRun, build_pipeline
from ..schemas.jobs import FollowUpJob
from ..utils import (
    FollowUpError,
    PermanentError,
    RetryableError,
    close_redis,
    create_redis_client,
    run_async,
)

logger = logging.getLogger(__name__)


class FollowUpTask(Task):
    """Task holding the worker process's pipeline and Redis client.

    Both are created once per worker process (``worker_process_init``) and
    released at ``worker_process_shutdown``.
    """

    _pipeline: Optional[FollowUpPipeline] = None
    _redis: Optional[Redis] = None

    @property
    def pipeline(self) -> FollowUpPipeline:
        if FollowUpTask._pipeline is None:
            FollowUpTask._pipeline = build_pipeline(settings)
        return FollowUpTask._pipeline

    async def get_redis(self) -> Redis:
        if FollowUpTask._redis is None:
            FollowUpTask._redis = await create_redis_client(settings.REDIS_URL)
        return FollowUpTask._redis

    async def release(self) -> None:
        if FollowUpTask._pipeline is not None:
            await FollowUpTask._pipeline.aclose()
            FollowUpTask._pipeline = None
        await close_redis(FollowUpTask._redis)
        FollowUpTask._redis = None

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"[follow_up] Task {task_id} succeeded")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"[follow_up] Task {task_id} failed: {exc}", exc_info=einfo)


@celery_app.task(
    base=FollowUpTask,
    bind=True,
    max_retries=settings.QUEUE_MAX_RETRIES,
    name="garbo_followup.follow_up",
)
def follow_up(self, job_payload: dict) -> dict:
    """Refine a previous extraction for one report."""
    try:
        job = FollowUpJob(**job_payload)
    except ValidationError as e:
        error_msg = f"Invalid job payload: {e}"
        logger.error(f"[follow_up] {error_msg}")
        raise PermanentError(error_msg) from e

    job_id = self.request.id or job.document_id
    run = FollowUpRun(job)

    async def async_follow_up():
        redis_client = await self.get_redis()
        publisher = JobLogPublisher(redis_client, settings.JOB_LOG_KEY_PREFIX)
        cancellation = CancellationFlag(
            redis_client, job_id, settings.CANCELLATION_KEY_PREFIX
        )

        logger.info(f"[follow_up] Starting for document {job.document_id} (job {job_id})")
        try:
            result = await self.pipeline.execute(run, cancellation)
        except Exception as e:
            lines = e.log if isinstance(e, FollowUpError) else run.log.lines
            await publisher.publish(job_id, lines, "failed")
            raise

        await publisher.publish(job_id, result.log, "completed")
        logger.info(
            f"[follow_up] Completed for document {job.document_id} "
            f"in {result.attempts} attempts"
        )
        return result.model_dump()

    try:
        return run_async(async_follow_up())

    except PermanentError as e:
        logger.error(f"[follow_up] Permanent error (no retry): {e}")
        raise
    except RetryableError as e:
        logger.info(
            f"[follow_up] Retrying task (attempt {self.request.retries + 1}/"
            f"{self.max_retries}): {e}"
        )
        payload = job.redelivery(run.trace, run.last_response)
        raise self.retry(
            exc=e,
            countdown=settings.RETRY_COUNTDOWN,
            args=[payload],
            kwargs={},
        )


@worker_process_init.connect
def init_worker_resources(**kwargs):
    """Build the pipeline when a worker process starts."""
    follow_up.pipeline
    logger.info("[follow_up] Worker pipeline ready")


@worker_process_shutdown.connect
def close_worker_resources(**kwargs):
    """Release clients when a worker process exits."""
    try:
        run_async(follow_up.release())
    except Exception as e:
        logger.error(f"[follow_up] Error releasing worker resources: {e}")
    logger.info("[follow_up] Worker resources released")
