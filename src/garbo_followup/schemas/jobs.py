"""Type-safe job payload definitions."""

from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, Iterable, List, Optional


class FollowUpJob(BaseModel):
    """Job payload for a follow-up (refinement) extraction.

    Upstream callers enqueue camelCase payloads; both spellings are accepted.
    """
    document_id: str = Field(
        ..., validation_alias=AliasChoices("document_id", "documentId")
    )
    source_url: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("source_url", "sourceURL", "sourceUrl", "url"),
    )
    prompt: str = Field(..., min_length=1)
    schema_name: str = Field(
        ..., validation_alias=AliasChoices("schema_name", "schema", "schemaName")
    )
    previous_extraction: str = Field(
        default="",
        validation_alias=AliasChoices(
            "previous_extraction", "previousExtraction", "json"
        ),
    )
    previous_answer: str = Field(
        default="",
        validation_alias=AliasChoices("previous_answer", "previousAnswer"),
    )
    prior_trace: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("prior_trace", "priorTrace", "stacktrace"),
    )

    class Config:
        json_schema_extra = {
            "example": {
                "documentId": "doc_123",
                "sourceURL": "https://example.com/sustainability-report-2023.pdf",
                "prompt": "Add the company's scope 1 emissions for 2022 and 2023",
                "schema": "scope1",
                "previousExtraction": "{\"companyName\": \"Example AB\"}",
                "previousAnswer": "",
                "priorTrace": [],
            }
        }

    def redelivery(self, trace: List[str], last_answer: Optional[str]) -> Dict[str, Any]:
        """Payload for a queue-level retry carrying the accumulated failures."""
        payload = self.model_dump()
        payload["prior_trace"] = list(trace)
        if last_answer:
            payload["previous_answer"] = last_answer
        return payload


class FollowUpResult(BaseModel):
    """Terminal output of a successful follow-up job."""
    result: Optional[Dict[str, Any]] = None
    auxiliary_result: Optional[Dict[str, Any]] = None
    merged: Optional[Dict[str, Any]] = None
    attempts: int = 0
    log: List[str] = Field(default_factory=list)


class JobLog:
    """Human-readable, append-only trace of a single job.

    Operators read this to audit what was retrieved and what the model said,
    so every raw response ends up here, including rejected ones.
    """

    def __init__(self, lines: Optional[Iterable[str]] = None):
        self._lines: List[str] = list(lines or [])

    def log(self, line: str) -> None:
        self._lines.append(line)

    def extend(self, other: "JobLog") -> None:
        self._lines.extend(other.lines)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(list(self._lines))
