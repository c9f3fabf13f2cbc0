"""Unified configuration for the follow-up worker and pipeline."""

from pydantic_settings import BaseSettings
from typing import Optional
import logging


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The worker builds its pipeline from one instance of this class; tests
    construct their own instances instead of patching the module default.
    """

    # ===== REDIS =====
    REDIS_URL: str = "redis://localhost:6379/0"
    """Redis connection string."""

    # ===== CELERY =====
    CELERY_BROKER_URL: Optional[str] = None
    """Celery broker URL (defaults to REDIS_URL if not set)."""

    CELERY_RESULT_BACKEND: Optional[str] = None
    """Celery result backend (defaults to REDIS_URL if not set)."""

    CELERY_TASK_SERIALIZER: str = "json"
    """Celery task serializer format."""

    CELERY_RESULT_SERIALIZER: str = "json"
    """Celery result serializer format."""

    CELERY_ACCEPT_CONTENT: list = ["json"]
    """Celery accepted content types."""

    CELERY_TIMEZONE: str = "UTC"
    """Celery timezone."""

    # ===== WORKER SETTINGS =====
    WORKER_PREFETCH_MULTIPLIER: int = 1
    """Celery worker prefetch multiplier."""

    TASK_SOFT_TIME_LIMIT: int = 600  # 10 minutes
    """Celery task soft time limit in seconds."""

    TASK_TIME_LIMIT: int = 900  # 15 minutes
    """Celery task hard time limit in seconds."""

    QUEUE_MAX_RETRIES: int = 3
    """How many times the queue redelivers a job after a retryable error."""

    RETRY_COUNTDOWN: int = 60
    """Seconds to wait before a queue-level redelivery."""

    # ===== OPENAI SETTINGS =====
    OPENAI_API_KEY: Optional[str] = None
    """OpenAI API key for chat completions and query embeddings."""

    OPENAI_CHAT_MODEL: str = "gpt-4o"
    """OpenAI model used for structured extraction."""

    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    """OpenAI model used to embed retrieval queries."""

    # ===== CHROMA SETTINGS =====
    CHROMA_HOST: str = "localhost"
    """Chroma server host."""

    CHROMA_PORT: int = 8000
    """Chroma server port."""

    CHROMA_COLLECTION: str = "emission_reports"
    """Collection holding the indexed report passages."""

    # ===== EXTRACTION SETTINGS =====
    RETRIEVAL_TOP_K: int = 5
    """Passages retrieved per query."""

    MAX_ATTEMPTS: int = 3
    """Generation attempts per job before validation failure is terminal."""

    MAX_RESPONSE_CHARS: int = 200_000
    """Upper bound on a streamed model response."""

    # ===== JOB STATE KEYS =====
    CANCELLATION_KEY_PREFIX: str = "followup:abandoned:"
    """Redis key prefix marking a job as abandoned."""

    JOB_LOG_KEY_PREFIX: str = "followup:log:"
    """Redis key prefix (list and channel) for per-job operator logs."""

    # ===== LOGGING =====
    LOG_LEVEL: str = logging.getLevelName(logging.INFO)
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    # ===== APPLICATION =====
    ENV: str = "development"
    """Environment: development, staging, production."""

    DEBUG: bool = False
    """Enable debug mode."""

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **data):
        """Initialize settings with defaults for Celery URLs."""
        super().__init__(**data)

        if self.CELERY_BROKER_URL is None:
            self.CELERY_BROKER_URL = self.REDIS_URL
        if self.CELERY_RESULT_BACKEND is None:
            self.CELERY_RESULT_BACKEND = self.REDIS_URL
        if self.MAX_ATTEMPTS < 1:
            raise ValueError("MAX_ATTEMPTS must be at least 1")


settings = Settings()

__all__ = ["Settings", "settings"]
