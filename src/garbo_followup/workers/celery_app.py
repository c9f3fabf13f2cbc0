"""Celery application configuration using shared settings."""

import logging

from celery import Celery
from celery.signals import task_prerun, task_postrun

from ..config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "garbo_followup",
    include=["garbo_followup.workers.follow_up"],
)

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.CELERY_ACCEPT_CONTENT,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    # A job is only acknowledged once it reaches a terminal state
    task_acks_late=True,
    worker_prefetch_multiplier=settings.WORKER_PREFETCH_MULTIPLIER,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=settings.TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.TASK_TIME_LIMIT,
    task_track_started=True,
)


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **kwargs):
    logger.info(f"[celery] Starting task: {task.name} (ID: {task_id})")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, state=None, **kwargs):
    logger.info(f"[celery] Completed task: {task.name} (ID: {task_id}, state: {state})")
