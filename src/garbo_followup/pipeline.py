"""
Follow-up extraction pipeline.

Orchestrates:
- Passage retrieval scoped to the job's report
- The primary refinement extraction, retried on validation failure
- The auxiliary equality-goals extraction, isolated from the primary result

State machine of the primary extraction:

    IDLE -> RETRIEVING -> GENERATING -> VALIDATING -> SUCCEEDED
                              ^             |
                              +- RETRYING <-+-> FAILED

Any state except SUCCEEDED may move to FAILED on a non-validation error.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from openai import AsyncOpenAI
from pydantic import BaseModel

from .config import Settings
from .extraction import StructuredExtractor
from .lib.cancellation import CancellationFlag, raise_if_cancelled
from .prompts import equality_goals
from .prompts.conversation import ChatMessage, join_passages
from .prompts.equality_goals import build_equality_goals_conversation
from .prompts.follow_up import build_follow_up_conversation
from .retrieval import RetrievalClient, build_embedding_function
from .schemas.extraction import DiffModel, PartialRecord, get_schema
from .schemas.jobs import FollowUpJob, FollowUpResult, JobLog
from .utils.errors import (
    AuxiliaryExtractionFailed,
    FollowUpError,
    SchemaValidationFailed,
)

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.RETRIEVING, PipelineState.FAILED},
    PipelineState.RETRIEVING: {PipelineState.GENERATING, PipelineState.FAILED},
    PipelineState.GENERATING: {PipelineState.VALIDATING, PipelineState.FAILED},
    PipelineState.VALIDATING: {
        PipelineState.SUCCEEDED,
        PipelineState.RETRYING,
        PipelineState.FAILED,
    },
    PipelineState.RETRYING: {PipelineState.GENERATING, PipelineState.FAILED},
    PipelineState.SUCCEEDED: set(),
    PipelineState.FAILED: set(),
}


@dataclass(frozen=True)
class ExtractionAttempt:
    """One generation for a job, recorded once and never changed."""

    attempt_number: int
    conversation: Tuple[ChatMessage, ...]
    raw_response: str
    value: Optional[BaseModel] = None
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.value is not None


class FollowUpRun:
    """Mutable bookkeeping for a single job's primary extraction."""

    def __init__(self, job: FollowUpJob):
        self.job = job
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]
        self.attempts: List[ExtractionAttempt] = []
        self.trace: List[str] = list(job.prior_trace)
        self.last_response: Optional[str] = job.previous_answer or None
        self.log = JobLog()
        self.result: Optional[FollowUpResult] = None

    def transition(self, state: PipelineState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid pipeline transition {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)

    def record(self, attempt: ExtractionAttempt) -> None:
        expected = len(self.attempts) + 1
        if attempt.attempt_number != expected:
            raise RuntimeError(
                f"Attempt {attempt.attempt_number} recorded out of order (expected {expected})"
            )
        self.attempts.append(attempt)
        self.last_response = attempt.raw_response


def describe_failure(attempt_number: int, schema: Type[BaseModel], errors: Sequence[str]) -> str:
    """Trace entry fed back to the model on the next attempt."""
    details = "\n".join(f"- {error}" for error in errors)
    return (
        f"Attempt {attempt_number}: the response was not valid JSON for the "
        f"{schema.__name__} schema. Fix these errors and reply only with valid json:\n"
        f"{details}"
    )


class FollowUpPipeline:
    """Retrieval plus structured extraction with bounded retries."""

    def __init__(
        self,
        retriever: RetrievalClient,
        extractor: StructuredExtractor,
        max_attempts: int = 3,
        top_k: int = 5,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.retriever = retriever
        self.extractor = extractor
        self.max_attempts = max_attempts
        self.top_k = top_k

    async def run(
        self,
        job: FollowUpJob,
        cancellation: Optional[CancellationFlag] = None,
    ) -> FollowUpResult:
        return await self.execute(FollowUpRun(job), cancellation)

    async def execute(
        self,
        run: FollowUpRun,
        cancellation: Optional[CancellationFlag] = None,
    ) -> FollowUpResult:
        """
        Run both extractions for a job and combine their output.

        The two flows run concurrently, each writing to its own log; the logs
        are joined (primary first) once both are done.

        Returns:
            FollowUpResult with the validated diff

        Raises:
            SchemaValidationFailed: If every attempt failed validation
            RetrievalUnavailable, GenerationUnavailable, ResponseTooLarge,
            JobCancelled: On non-validation failures of the primary flow
            FollowUpError: Wrapping any other error, with the log so far
        """
        job = run.job
        try:
            schema = get_schema(job.schema_name)
        except FollowUpError as e:
            run.log.log(f"Failed: {type(e).__name__}: {e}")
            run.transition(PipelineState.FAILED)
            e.log = run.log.lines
            raise
        logger.info(
            f"[pipeline] Starting follow-up for document {job.document_id}",
            extra={"schema": job.schema_name, "source": job.source_url},
        )

        auxiliary_log = JobLog()
        auxiliary_task = asyncio.create_task(
            self._extract_equality_goals(job, auxiliary_log, cancellation)
        )

        try:
            diff = await self._extract_primary(run, schema, cancellation)
        except BaseException as e:
            auxiliary_task.cancel()
            await asyncio.gather(auxiliary_task, return_exceptions=True)
            if isinstance(e, FollowUpError):
                e.log = _joined(run.log, auxiliary_log)
                raise
            if isinstance(e, Exception):
                raise FollowUpError(
                    f"Unexpected error: {type(e).__name__}: {e}",
                    log=_joined(run.log, auxiliary_log),
                ) from e
            raise

        auxiliary_result = await auxiliary_task

        result = FollowUpResult(
            result=_to_dict(diff),
            auxiliary_result=auxiliary_result,
            merged=self._merge(job, diff, run.log),
            attempts=len(run.attempts),
            log=_joined(run.log, auxiliary_log),
        )
        run.result = result

        logger.info(
            f"[pipeline] Completed follow-up for document {job.document_id} "
            f"after {len(run.attempts)} attempts"
        )
        return result

    async def _extract_primary(
        self,
        run: FollowUpRun,
        schema: Type[BaseModel],
        cancellation: Optional[CancellationFlag],
    ) -> BaseModel:
        job = run.job
        run.transition(PipelineState.RETRIEVING)
        try:
            await raise_if_cancelled(cancellation, "retrieval")
            passages = await self.retriever.retrieve(
                job.prompt, job.source_url, self.top_k
            )
            texts = [p.text for p in passages]

            run.log.log(
                f"Reflecting on: {job.prompt}\n"
                f"{job.previous_extraction}\n\n"
                f"Context:\n{join_passages(texts)}\n"
            )

            previous_answer = job.previous_answer
            for attempt_number in range(1, self.max_attempts + 1):
                run.transition(PipelineState.GENERATING)
                conversation = build_follow_up_conversation(
                    texts,
                    job.previous_extraction,
                    job.prompt,
                    previous_answer=previous_answer,
                    trace=run.trace,
                )
                run.log.log(f"Attempt {attempt_number}/{self.max_attempts}")

                outcome = await self.extractor.extract(
                    conversation, schema, run.log, cancellation
                )
                run.transition(PipelineState.VALIDATING)
                run.record(
                    ExtractionAttempt(
                        attempt_number=attempt_number,
                        conversation=tuple(conversation),
                        raw_response=outcome.raw,
                        value=outcome.value,
                        errors=outcome.errors,
                    )
                )

                if outcome.ok:
                    run.transition(PipelineState.SUCCEEDED)
                    return outcome.value

                failure = describe_failure(attempt_number, schema, outcome.errors)
                run.trace.append(failure)
                run.log.log(failure)
                previous_answer = outcome.raw

                if attempt_number < self.max_attempts:
                    run.transition(PipelineState.RETRYING)
                    logger.info(
                        f"[pipeline] Attempt {attempt_number} failed validation, retrying",
                        extra={"document_id": job.document_id},
                    )

            raise SchemaValidationFailed(
                f"Response failed {schema.__name__} validation after "
                f"{self.max_attempts} attempts",
                attempts=run.attempts,
                trace=run.trace,
                last_response=run.last_response,
            )

        except Exception as e:
            run.log.log(f"Failed: {type(e).__name__}: {e}")
            run.transition(PipelineState.FAILED)
            logger.error(
                f"[pipeline] Follow-up failed for document {job.document_id}: "
                f"{type(e).__name__}: {e}"
            )
            raise

    async def _extract_equality_goals(
        self,
        job: FollowUpJob,
        log: JobLog,
        cancellation: Optional[CancellationFlag],
    ) -> Optional[Dict[str, Any]]:
        try:
            await raise_if_cancelled(cancellation, "equality goals retrieval")
            passages = await self.retriever.retrieve(
                equality_goals.prompt, job.source_url, self.top_k
            )
            texts = [p.text for p in passages]
            log.log(
                f"Equality goals extraction for {job.source_url}:\n"
                f"{join_passages(texts)}\n"
            )

            outcome = await self.extractor.extract(
                build_equality_goals_conversation(texts),
                equality_goals.schema,
                log,
                cancellation,
            )
            if not outcome.ok:
                raise AuxiliaryExtractionFailed(
                    "Equality goals response failed validation: "
                    + "; ".join(outcome.errors)
                )
            return _to_dict(outcome.value)

        except Exception as e:
            # Never allowed to affect the primary extraction.
            logger.warning(
                f"[pipeline] Equality goals extraction failed for {job.source_url}: "
                f"{type(e).__name__}: {e}"
            )
            log.log(f"Equality goals extraction failed: {type(e).__name__}: {e}")
            return None

    @staticmethod
    def _merge(job: FollowUpJob, diff: BaseModel, log: JobLog) -> Optional[Dict[str, Any]]:
        try:
            record = PartialRecord.from_json(job.previous_extraction)
        except ValueError as e:
            logger.warning(f"[pipeline] Previous extraction is not a JSON object: {e}")
            log.log(f"Previous extraction could not be merged: {e}")
            return None
        return record.merge(diff).to_dict()

    async def aclose(self) -> None:
        await self.retriever.close()
        await self.extractor.client.close()


def _to_dict(value: BaseModel) -> Dict[str, Any]:
    if isinstance(value, DiffModel):
        return value.to_diff()
    return value.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


def _joined(primary: JobLog, auxiliary: JobLog) -> List[str]:
    return primary.lines + auxiliary.lines


def build_pipeline(settings: Settings) -> FollowUpPipeline:
    """Construct the pipeline and its clients from settings."""
    openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    retriever = RetrievalClient(
        settings.CHROMA_COLLECTION,
        host=settings.CHROMA_HOST,
        port=settings.CHROMA_PORT,
        embedding_function=build_embedding_function(
            settings.OPENAI_API_KEY, settings.OPENAI_EMBEDDING_MODEL
        ),
    )
    extractor = StructuredExtractor(
        openai_client,
        model=settings.OPENAI_CHAT_MODEL,
        max_response_chars=settings.MAX_RESPONSE_CHARS,
    )
    return FollowUpPipeline(
        retriever,
        extractor,
        max_attempts=settings.MAX_ATTEMPTS,
        top_k=settings.RETRIEVAL_TOP_K,
    )


__all__ = [
    "PipelineState",
    "ExtractionAttempt",
    "FollowUpRun",
    "FollowUpPipeline",
    "describe_failure",
    "build_pipeline",
]
