"""
Passage retrieval from the report vector index.

Each indexed passage carries the URL of the report it was cut from in its
``source`` metadata. Every query is scoped to a single report so that a job
never sees text from another company's document.
"""

import asyncio
import logging
from typing import Any, List, Optional

import chromadb
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction

from .utils.errors import RetrievalUnavailable

logger = logging.getLogger(__name__)


class RetrievedPassage:
    """Passage returned by the index, most relevant first."""

    def __init__(
        self,
        text: str,
        source: str,
        passage_id: Optional[str] = None,
        distance: Optional[float] = None,
    ):
        self.text = text
        self.source = source
        self.passage_id = passage_id
        self.distance = distance

    def to_dict(self):
        return {
            "text": self.text,
            "source": self.source,
            "passage_id": self.passage_id,
            "distance": self.distance,
        }

    def __repr__(self):
        return f"RetrievedPassage(source={self.source!r}, passage_id={self.passage_id!r})"


class RetrievalClient:
    """Top-K passage lookup against a Chroma collection.

    The HTTP client and collection handle are opened on first use and kept
    for the lifetime of the worker process.
    """

    def __init__(
        self,
        collection_name: str,
        host: str = "localhost",
        port: int = 8000,
        embedding_function: Any = None,
        client: Any = None,
    ):
        self.collection_name = collection_name
        self.host = host
        self.port = port
        self.embedding_function = embedding_function
        self._client = client
        self._collection = None
        self._lock = asyncio.Lock()

    async def _get_collection(self):
        # Primary and auxiliary flows may both open the collection on first use.
        async with self._lock:
            if self._collection is None:
                if self._client is None:
                    self._client = await chromadb.AsyncHttpClient(
                        host=self.host, port=self.port
                    )
                self._collection = await self._client.get_collection(
                    name=self.collection_name,
                    embedding_function=self.embedding_function,
                )
                logger.info(
                    f"[retrieval] Connected to collection '{self.collection_name}'"
                )
        return self._collection

    async def retrieve(
        self,
        query_text: str,
        source_filter: str,
        top_k: int = 5,
    ) -> List[RetrievedPassage]:
        """
        Fetch the passages most relevant to ``query_text`` from one report.

        Args:
            query_text: Natural-language query to embed and search with
            source_filter: Source URL the passages must belong to
            top_k: Number of passages to request

        Returns:
            Passages ordered as the index ranked them; empty when nothing matches

        Raises:
            ValueError: If source_filter is empty or top_k < 1
            RetrievalUnavailable: If the index cannot be reached or queried
        """
        if not source_filter:
            raise ValueError("source_filter must be a non-empty source URL")
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")

        try:
            collection = await self._get_collection()
            results = await collection.query(
                query_texts=[query_text],
                n_results=top_k,
                where={"source": source_filter},
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            logger.error(
                f"[retrieval] Query failed for source {source_filter}: "
                f"{type(e).__name__}: {e}"
            )
            raise RetrievalUnavailable(
                f"Vector index unavailable: {type(e).__name__}: {e}"
            ) from e

        passages = self._to_passages(results, source_filter)
        logger.info(
            f"[retrieval] Retrieved {len(passages)} passages",
            extra={"source": source_filter, "top_k": top_k},
        )
        return passages

    @staticmethod
    def _to_passages(results, source_filter: str) -> List[RetrievedPassage]:
        documents = _first(results.get("documents"))
        metadatas = _first(results.get("metadatas"))
        ids = _first(results.get("ids"))
        distances = _first(results.get("distances"))

        passages = []
        dropped = 0
        for i, text in enumerate(documents):
            metadata = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
            source = metadata.get("source", source_filter)
            if source != source_filter:
                dropped += 1
                continue
            passages.append(
                RetrievedPassage(
                    text=text or "",
                    source=source,
                    passage_id=ids[i] if i < len(ids) else None,
                    distance=distances[i] if i < len(distances) else None,
                )
            )

        if dropped:
            logger.warning(
                f"[retrieval] Dropped {dropped} passages from other sources",
                extra={"source": source_filter},
            )
        return passages

    async def close(self):
        """Release the cached collection and client handles."""
        self._collection = None
        self._client = None


def _first(nested) -> list:
    # Chroma returns one result list per query text; we always send one.
    if not nested:
        return []
    return list(nested[0] or [])


def build_embedding_function(api_key: Optional[str], model_name: str):
    """OpenAI embedder matching the one used when the reports were indexed."""
    return OpenAIEmbeddingFunction(api_key=api_key, model_name=model_name)


__all__ = ["RetrievedPassage", "RetrievalClient", "build_embedding_function"]
