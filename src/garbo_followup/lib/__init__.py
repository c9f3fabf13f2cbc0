from .cancellation import CancellationFlag, raise_if_cancelled
from .job_log import JobLogPublisher

__all__ = [
    "CancellationFlag",
    "raise_if_cancelled",
    "JobLogPublisher",
]
