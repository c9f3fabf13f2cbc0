"""Pytest configuration and fixtures"""

import os

# Set test environment variables BEFORE any imports
# This must happen at module load time, not in a fixture
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["OPENAI_API_KEY"] = "sk-test-key"
os.environ["CHROMA_HOST"] = "localhost"

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from garbo_followup.prompts import equality_goals
from garbo_followup.retrieval import RetrievedPassage
from garbo_followup.schemas.jobs import FollowUpJob

SOURCE_URL = "https://example.com/reports/acme-sustainability-2023.pdf"


class FakeStream:
    """Stand-in for openai.AsyncStream yielding text deltas."""

    def __init__(self, parts, error=None):
        self.parts = list(parts)
        self.error = error
        self.closed = False
        self.consumed = 0

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        for part in self.parts:
            self.consumed += 1
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content=part))]
            )
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


def chunked(text, size=7):
    return [text[i:i + size] for i in range(0, len(text), size)]


class FakeChat:
    """OpenAI client double routing responses by requested schema.

    Primary and auxiliary extractions run concurrently, so responses are
    queued per schema rather than by global call order.
    """

    def __init__(self, primary=(), auxiliary=()):
        self.primary = list(primary)
        self.auxiliary = list(auxiliary)
        self.streams = []
        self.client = MagicMock()
        self.client.chat.completions.create = AsyncMock(side_effect=self._create)
        self.client.close = AsyncMock()

    async def _create(self, **kwargs):
        name = kwargs["response_format"]["json_schema"]["name"]
        queue = self.auxiliary if name == "equalityGoals" else self.primary
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        stream = item if isinstance(item, FakeStream) else FakeStream(chunked(item))
        self.streams.append(stream)
        return stream

    def calls_for(self, name):
        return [
            call.kwargs
            for call in self.client.chat.completions.create.call_args_list
            if call.kwargs["response_format"]["json_schema"]["name"] == name
        ]


class FakeRetriever:
    """Retrieval double answering by query text."""

    def __init__(self, primary=(), auxiliary=(), primary_error=None, auxiliary_error=None):
        self.primary = list(primary)
        self.auxiliary = list(auxiliary)
        self.primary_error = primary_error
        self.auxiliary_error = auxiliary_error
        self.calls = []
        self.close = AsyncMock()

    async def retrieve(self, query_text, source_filter, top_k=5):
        self.calls.append((query_text, source_filter, top_k))
        if query_text == equality_goals.prompt:
            if self.auxiliary_error is not None:
                raise self.auxiliary_error
            texts = self.auxiliary
        else:
            if self.primary_error is not None:
                raise self.primary_error
            texts = self.primary
        return [RetrievedPassage(text=t, source=source_filter, passage_id=f"p{i}") for i, t in enumerate(texts)]


@pytest.fixture
def fake_chat():
    return FakeChat


@pytest.fixture
def fake_retriever():
    return FakeRetriever


@pytest.fixture
def job():
    return FollowUpJob(
        documentId="doc-123",
        sourceURL=SOURCE_URL,
        prompt="Add the company's scope 1 emissions for 2022 and 2023",
        schema="scope1",
        previousExtraction='{"companyName": "Acme AB", "industry": {"subIndustryCode": "20101010"}}',
    )


@pytest.fixture
def redis_mock():
    """Mock Redis client for testing."""
    client = AsyncMock()
    client.exists = AsyncMock(return_value=0)
    return client



@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def source_url():
    return SOURCE_URL
