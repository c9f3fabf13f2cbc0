from .jobs import FollowUpJob, FollowUpResult, JobLog
from .extraction import (
    DiffModel,
    EqualityGoals,
    PartialRecord,
    SCHEMAS,
    get_schema,
    response_format,
)

__all__ = [
    "FollowUpJob",
    "FollowUpResult",
    "JobLog",
    "DiffModel",
    "EqualityGoals",
    "PartialRecord",
    "SCHEMAS",
    "get_schema",
    "response_format",
]
