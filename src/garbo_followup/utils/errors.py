"""Error taxonomy for the follow-up extraction pipeline."""

from typing import List, Optional


class FollowUpError(Exception):
    """Base exception for garbo-followup.

    Pipeline failures carry the job log lines collected so far so the
    worker can publish them even when the job fails.
    """

    def __init__(self, message: str = "", log: Optional[List[str]] = None):
        super().__init__(message)
        self.log: List[str] = list(log or [])


class PermanentError(FollowUpError):
    """Error that should not be retried."""
    pass


class RetryableError(FollowUpError):
    """Error that can be retried with backoff."""
    pass


class RetrievalUnavailable(RetryableError):
    """Vector index could not be reached or queried."""
    pass


class GenerationUnavailable(RetryableError):
    """Model service unreachable or returned a transport error."""
    pass


class ResponseTooLarge(PermanentError):
    """Streamed model response exceeded the configured size limit."""

    def __init__(self, limit: int, received: int, log: Optional[List[str]] = None):
        super().__init__(
            f"Model response exceeded {limit} characters (received {received})",
            log=log,
        )
        self.limit = limit
        self.received = received


class SchemaValidationFailed(PermanentError):
    """Every attempt failed schema validation and the budget is spent."""

    def __init__(
        self,
        message: str,
        attempts=None,
        trace: Optional[List[str]] = None,
        last_response: Optional[str] = None,
        log: Optional[List[str]] = None,
    ):
        super().__init__(message, log=log)
        self.attempts = list(attempts or [])
        self.trace: List[str] = list(trace or [])
        self.last_response = last_response


class AuxiliaryExtractionFailed(FollowUpError):
    """Equality-goals extraction failed. Always handled locally."""
    pass


class JobCancelled(PermanentError):
    """Job was marked as abandoned by the queue."""
    pass


class UnknownSchema(PermanentError):
    """Job referenced a schema that is not registered."""
    pass
