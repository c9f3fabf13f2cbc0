"""garbo-followup: refinement extraction over sustainability reports."""

from .config import Settings, settings
from .utils import (
    setup_logging,
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
    run_async,
)
from .schemas import FollowUpJob, FollowUpResult, JobLog, PartialRecord, get_schema
from .retrieval import RetrievalClient, RetrievedPassage
from .extraction import ExtractionOutcome, StructuredExtractor
from .pipeline import (
    ExtractionAttempt,
    FollowUpPipeline,
    FollowUpRun,
    PipelineState,
    build_pipeline,
)

__version__ = "0.1.0"
__all__ = [
    "Settings",
    "settings",
    "setup_logging",
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
    "run_async",
    "FollowUpJob",
    "FollowUpResult",
    "JobLog",
    "PartialRecord",
    "get_schema",
    "RetrievalClient",
    "RetrievedPassage",
    "ExtractionOutcome",
    "StructuredExtractor",
    "ExtractionAttempt",
    "FollowUpPipeline",
    "FollowUpRun",
    "PipelineState",
    "build_pipeline",
]
