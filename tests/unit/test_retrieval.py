"""Tests for the Chroma retrieval client."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from garbo_followup.retrieval import RetrievalClient
from garbo_followup.utils.errors import RetrievalUnavailable

SOURCE = "https://example.com/acme-2023.pdf"
OTHER = "https://example.com/other-2023.pdf"


def make_client(query_result=None, query_error=None):
    collection = MagicMock()
    if query_error is not None:
        collection.query = AsyncMock(side_effect=query_error)
    else:
        collection.query = AsyncMock(return_value=query_result)
    chroma = MagicMock()
    chroma.get_collection = AsyncMock(return_value=collection)
    return chroma, collection


@pytest.mark.asyncio
async def test_retrieve_scopes_query_to_source():
    """Test that the source filter and top-K are sent to the index."""
    chroma, collection = make_client({
        "ids": [["a", "b"]],
        "documents": [["first passage", "second passage"]],
        "metadatas": [[{"source": SOURCE}, {"source": SOURCE}]],
        "distances": [[0.1, 0.2]],
    })
    client = RetrievalClient("emission_reports", client=chroma)

    passages = await client.retrieve("scope 1 emissions", SOURCE, top_k=5)

    assert [p.text for p in passages] == ["first passage", "second passage"]
    assert all(p.source == SOURCE for p in passages)
    assert passages[0].passage_id == "a"
    assert passages[1].distance == 0.2

    call_kwargs = collection.query.call_args[1]
    assert call_kwargs["query_texts"] == ["scope 1 emissions"]
    assert call_kwargs["n_results"] == 5
    assert call_kwargs["where"] == {"source": SOURCE}


@pytest.mark.asyncio
async def test_retrieve_drops_passages_from_other_sources():
    """Test that passages of another report never leak through."""
    chroma, _ = make_client({
        "ids": [["a", "b", "c"]],
        "documents": [["ours", "theirs", "ours again"]],
        "metadatas": [[{"source": SOURCE}, {"source": OTHER}, {"source": SOURCE}]],
    })
    client = RetrievalClient("emission_reports", client=chroma)

    passages = await client.retrieve("goals", SOURCE)

    assert [p.text for p in passages] == ["ours", "ours again"]
    assert {p.source for p in passages} == {SOURCE}


@pytest.mark.asyncio
async def test_retrieve_keeps_duplicates_in_index_order():
    chroma, _ = make_client({
        "ids": [["a", "b"]],
        "documents": [["same text", "same text"]],
        "metadatas": [[{"source": SOURCE}, {"source": SOURCE}]],
    })
    client = RetrievalClient("emission_reports", client=chroma)

    passages = await client.retrieve("query", SOURCE)

    assert [p.passage_id for p in passages] == ["a", "b"]


@pytest.mark.asyncio
async def test_retrieve_empty_result_is_not_an_error():
    """Test that no matches returns an empty list."""
    chroma, _ = make_client({"ids": [[]], "documents": [[]], "metadatas": [[]]})
    client = RetrievalClient("emission_reports", client=chroma)

    assert await client.retrieve("query", SOURCE) == []


@pytest.mark.asyncio
async def test_retrieve_validates_inputs():
    chroma, collection = make_client({"documents": [[]]})
    client = RetrievalClient("emission_reports", client=chroma)

    with pytest.raises(ValueError, match="source_filter"):
        await client.retrieve("query", "")
    with pytest.raises(ValueError, match="top_k"):
        await client.retrieve("query", SOURCE, top_k=0)

    collection.query.assert_not_called()


@pytest.mark.asyncio
async def test_index_errors_raise_retrieval_unavailable():
    """Test that index failures are surfaced as RetrievalUnavailable."""
    chroma, _ = make_client(query_error=ConnectionError("Connection refused"))
    client = RetrievalClient("emission_reports", client=chroma)

    with pytest.raises(RetrievalUnavailable, match="Connection refused"):
        await client.retrieve("query", SOURCE)


@pytest.mark.asyncio
async def test_missing_collection_raises_retrieval_unavailable():
    chroma = MagicMock()
    chroma.get_collection = AsyncMock(side_effect=ValueError("Collection does not exist"))
    client = RetrievalClient("emission_reports", client=chroma)

    with pytest.raises(RetrievalUnavailable):
        await client.retrieve("query", SOURCE)


@pytest.mark.asyncio
async def test_collection_opened_once():
    """Test the collection handle is reused across queries."""
    chroma, collection = make_client({"documents": [["x"]], "metadatas": [[{"source": SOURCE}]]})
    client = RetrievalClient("emission_reports", client=chroma)

    await client.retrieve("one", SOURCE)
    await client.retrieve("two", SOURCE)

    chroma.get_collection.assert_called_once()
    assert collection.query.call_count == 2

    await client.close()
    assert client._collection is None


@pytest.mark.asyncio
async def test_concurrent_first_use_opens_one_client(mocker):
    """Test that concurrent first queries share a single Chroma client."""
    collection = MagicMock()
    collection.query = AsyncMock(
        return_value={"documents": [["x"]], "metadatas": [[{"source": SOURCE}]]}
    )
    chroma = MagicMock()

    async def open_collection(**kwargs):
        await asyncio.sleep(0)
        return collection

    chroma.get_collection = AsyncMock(side_effect=open_collection)

    async def connect(**kwargs):
        await asyncio.sleep(0)
        return chroma

    http_client = mocker.patch(
        "garbo_followup.retrieval.chromadb.AsyncHttpClient", side_effect=connect
    )
    client = RetrievalClient("emission_reports", host="chroma", port=8123)

    first, second = await asyncio.gather(
        client.retrieve("primary", SOURCE),
        client.retrieve("equality goals", SOURCE),
    )

    http_client.assert_called_once_with(host="chroma", port=8123)
    chroma.get_collection.assert_called_once()
    assert len(first) == len(second) == 1
