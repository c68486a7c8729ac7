"""Session indices stored in ephemeral Chroma collections."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

import chromadb

from drivechat.embeddings import EmbeddingProvider
from drivechat.errors import VectorStoreUnavailableError
from drivechat.ingest.models import DocumentChunk

from .base import IndexBuilder, IndexedFile, SessionIndex

LOGGER = logging.getLogger(__name__)
DEFAULT_DISTANCE_METRIC = "cosine"


class ChromaSessionIndex(SessionIndex):
    """Index whose vectors live in a dedicated in-process Chroma collection."""

    def __init__(
        self,
        chunks: Sequence[DocumentChunk],
        files: Sequence[IndexedFile],
        collection: Any,
        chunk_ids: Sequence[str],
        embedding_provider: EmbeddingProvider,
    ) -> None:
        super().__init__(chunks, files)
        self._collection = collection
        self._by_id: Dict[str, DocumentChunk] = dict(zip(chunk_ids, self.chunks))
        self._embedding_provider = embedding_provider

    @property
    def collection_name(self) -> str:
        return str(self._collection.name)

    async def search(self, query: str, k: int) -> List[DocumentChunk]:
        if not query.strip() or k <= 0 or not self.chunks:
            return []

        query_embeddings = await self._embedding_provider.embed_texts([query])
        if not query_embeddings:
            return []

        n_results = min(k, len(self.chunks))
        try:
            result = await asyncio.to_thread(
                self._collection.query,
                query_embeddings=[list(map(float, query_embeddings[0]))],
                n_results=n_results,
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Chroma query failed", cause=exc) from exc

        ids = (result.get("ids") or [[]])[0]
        return [self._by_id[chunk_id] for chunk_id in ids if chunk_id in self._by_id]


class ChromaIndexBuilder(IndexBuilder):
    """Build one ephemeral Chroma collection per ingestion run."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        *,
        client: Optional[Any] = None,
        distance_metric: str = DEFAULT_DISTANCE_METRIC,
    ) -> None:
        self.embedding_provider = embedding_provider
        self._client = client
        self._distance_metric = distance_metric

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = chromadb.EphemeralClient()
            except Exception as exc:  # pragma: no cover - depends on chromadb runtime
                raise VectorStoreUnavailableError("Failed to initialise Chroma client", cause=exc) from exc
        return self._client

    async def build(
        self, chunks: Sequence[DocumentChunk], files: Sequence[IndexedFile]
    ) -> SessionIndex:
        documents = [chunk.content for chunk in chunks]
        embeddings = await self.embedding_provider.embed_texts(documents)
        chunk_ids = [uuid.uuid4().hex for _ in chunks]
        name = f"session-{uuid.uuid4().hex}"

        vectors = [list(map(float, vector)) for vector in embeddings]
        metadatas = [chunk.metadata() for chunk in chunks]

        def _create_collection() -> Any:
            client = self._get_client()
            collection = client.create_collection(
                name=name, metadata={"hnsw:space": self._distance_metric}
            )
            # The server rejects writes larger than its advertised batch size.
            batch_size = max(int(client.get_max_batch_size()), 1)
            for start in range(0, len(chunk_ids), batch_size):
                end = start + batch_size
                collection.add(
                    ids=chunk_ids[start:end],
                    embeddings=vectors[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
            return collection

        try:
            collection = await asyncio.to_thread(_create_collection)
        except VectorStoreUnavailableError:
            raise
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to populate Chroma collection", cause=exc) from exc

        LOGGER.info("Built Chroma collection %s with %d chunks", name, len(chunks))
        return ChromaSessionIndex(chunks, files, collection, chunk_ids, self.embedding_provider)
