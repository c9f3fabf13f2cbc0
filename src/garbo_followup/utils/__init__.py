from .errors import (
    FollowUpError,
    PermanentError,
    RetryableError,
    RetrievalUnavailable,
    GenerationUnavailable,
    ResponseTooLarge,
    SchemaValidationFailed,
    AuxiliaryExtractionFailed,
    JobCancelled,
    UnknownSchema,
)
from .logging import setup_logging, JSONFormatter
from .redis import create_redis_client, close_redis
from .asyncio import run_async

__all__ = [
    "FollowUpError",
    "PermanentError",
    "RetryableError",
    "RetrievalUnavailable",
    "GenerationUnavailable",
    "ResponseTooLarge",
    "SchemaValidationFailed",
    "AuxiliaryExtractionFailed",
    "JobCancelled",
    "UnknownSchema",
    "setup_logging",
    "JSONFormatter",
    "create_redis_client",
    "close_redis",
    "run_async",
]
