"""Structured extraction over a streamed OpenAI chat completion.

The model is asked for JSON matching a pydantic diff model. The response is
consumed chunk by chunk (each chunk is a point where an abandoned job can be
stopped), bounded in size, and only validated once complete. Invalid output
is returned to the caller with the raw text intact; deciding whether to try
again is the pipeline's job, not this module's.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Type

import httpx
from openai import APIError, AsyncOpenAI
from pydantic import BaseModel, ValidationError

from .lib.cancellation import CancellationFlag, raise_if_cancelled
from .prompts.conversation import ChatMessage, to_openai
from .schemas.extraction import response_format, schema_name
from .schemas.jobs import JobLog
from .utils.errors import GenerationUnavailable, ResponseTooLarge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionOutcome:
    """Raw model output plus either the validated value or the errors."""

    raw: str
    value: Optional[BaseModel] = None
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.value is not None


def format_validation_errors(exc: ValidationError) -> List[str]:
    """One human-readable line per pydantic error, for logs and retry prompts."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        if location:
            messages.append(f"{location}: {error['msg']}")
        else:
            messages.append(error["msg"])
    return messages


class StructuredExtractor:
    """Sends conversations to the chat API and validates the answers."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o",
        max_response_chars: int = 200_000,
    ):
        self.client = client
        self.model = model
        self.max_response_chars = max_response_chars

    async def extract(
        self,
        conversation: Sequence[ChatMessage],
        schema: Type[BaseModel],
        log: JobLog,
        cancellation: Optional[CancellationFlag] = None,
    ) -> ExtractionOutcome:
        """
        Run one structured generation.

        Args:
            conversation: Ordered chat messages
            schema: Pydantic model the answer must validate against
            log: Job log; the raw response is always appended
            cancellation: Optional abandoned-job flag

        Returns:
            ExtractionOutcome with the value on success or the errors on failure

        Raises:
            GenerationUnavailable: On transport or API errors
            ResponseTooLarge: If the response exceeds max_response_chars
            JobCancelled: If the job is abandoned before or during streaming
        """
        await raise_if_cancelled(cancellation, "generation")

        logger.info(
            f"[extractor] Requesting {schema_name(schema)} from {self.model} "
            f"with {len(conversation)} messages"
        )

        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=to_openai(conversation),
                response_format=response_format(schema),
                stream=True,
            )
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"[extractor] OpenAI API error: {type(e).__name__}: {e}")
            raise GenerationUnavailable(
                f"Model service error: {type(e).__name__}: {e}"
            ) from e

        raw = await self._consume(stream, log, cancellation)
        log.log("Response: " + raw)

        try:
            value = schema.model_validate_json(raw)
        except ValidationError as e:
            errors = tuple(format_validation_errors(e))
            logger.warning(
                f"[extractor] Response failed {schema_name(schema)} validation "
                f"with {len(errors)} errors"
            )
            return ExtractionOutcome(raw=raw, errors=errors)

        return ExtractionOutcome(raw=raw, value=value)

    async def _consume(
        self,
        stream: Any,
        log: JobLog,
        cancellation: Optional[CancellationFlag],
    ) -> str:
        parts: List[str] = []
        received = 0
        try:
            async for chunk in stream:
                await raise_if_cancelled(cancellation, "next response chunk")
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if not delta:
                    continue
                received += len(delta)
                if received > self.max_response_chars:
                    log.log(
                        f"Response aborted after {received} characters "
                        f"(limit {self.max_response_chars}): " + "".join(parts)
                    )
                    raise ResponseTooLarge(self.max_response_chars, received)
                parts.append(delta)
        except (APIError, httpx.HTTPError) as e:
            # httpx errors raised while iterating are not wrapped by openai.
            logger.error(f"[extractor] Stream interrupted: {type(e).__name__}: {e}")
            log.log("Response interrupted: " + "".join(parts))
            raise GenerationUnavailable(
                f"Model stream interrupted: {type(e).__name__}: {e}"
            ) from e
        finally:
            await stream.close()

        return "".join(parts)


__all__ = [
    "ExtractionOutcome",
    "StructuredExtractor",
    "format_validation_errors",
]
