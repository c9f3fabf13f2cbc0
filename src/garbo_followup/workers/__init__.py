"""Celery worker tasks."""

from .celery_app import celery_app
from .follow_up import follow_up

__all__ = [
    "celery_app",
    "follow_up",
]
