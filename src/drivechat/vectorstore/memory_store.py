"""In-memory cosine similarity index backed by numpy."""
from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from drivechat.embeddings import EmbeddingProvider
from drivechat.errors import VectorStoreUnavailableError
from drivechat.ingest.models import DocumentChunk

from .base import IndexBuilder, IndexedFile, SessionIndex

LOGGER = logging.getLogger(__name__)


def _normalise(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return matrix / norms


class InMemorySessionIndex(SessionIndex):
    """Brute-force cosine search over a dense embedding matrix."""

    def __init__(
        self,
        chunks: Sequence[DocumentChunk],
        files: Sequence[IndexedFile],
        embeddings: Sequence[Sequence[float]],
        embedding_provider: EmbeddingProvider,
    ) -> None:
        super().__init__(chunks, files)
        if len(embeddings) != len(self.chunks):
            raise ValueError("Every chunk requires exactly one embedding")
        matrix = np.asarray(embeddings, dtype=np.float32)
        if matrix.ndim != 2:
            matrix = matrix.reshape(len(self.chunks), -1)
        self._matrix = _normalise(matrix)
        self._embedding_provider = embedding_provider

    async def search(self, query: str, k: int) -> List[DocumentChunk]:
        if not query.strip() or k <= 0 or not self.chunks:
            return []

        query_embeddings = await self._embedding_provider.embed_texts([query])
        if not query_embeddings:
            return []

        vector = _normalise(np.asarray(query_embeddings[0], dtype=np.float32))
        if vector.shape[-1] != self._matrix.shape[1]:
            raise VectorStoreUnavailableError(
                f"Query embedding has dimension {vector.shape[-1]}, index expects {self._matrix.shape[1]}"
            )
        scores = self._matrix @ vector
        order = np.argsort(-scores, kind="stable")[:k]
        return [self.chunks[int(position)] for position in order]


class InMemoryIndexBuilder(IndexBuilder):
    """Build :class:`InMemorySessionIndex` instances."""

    def __init__(self, embedding_provider: EmbeddingProvider) -> None:
        self.embedding_provider = embedding_provider

    async def build(
        self, chunks: Sequence[DocumentChunk], files: Sequence[IndexedFile]
    ) -> SessionIndex:
        embeddings = await self.embedding_provider.embed_texts([chunk.content for chunk in chunks])
        LOGGER.info("Built in-memory index with %d chunks from %d files", len(chunks), len(files))
        return InMemorySessionIndex(chunks, files, embeddings, self.embedding_provider)
