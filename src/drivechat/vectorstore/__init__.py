"""Vector index helpers backed by pluggable backends."""

from __future__ import annotations

from drivechat.config import Settings
from drivechat.embeddings import EmbeddingProvider
from drivechat.errors import VectorStoreUnavailableError

from .base import IndexBuilder, IndexedFile, SessionIndex
from .memory_store import InMemoryIndexBuilder, InMemorySessionIndex


def create_index_builder(settings: Settings, embedding_provider: EmbeddingProvider) -> IndexBuilder:
    """Return the index builder selected by ``VECTOR_STORE``."""

    backend = settings.vector_store
    if backend == "memory":
        return InMemoryIndexBuilder(embedding_provider)
    if backend == "chroma":
        from .chroma_store import ChromaIndexBuilder

        return ChromaIndexBuilder(embedding_provider)
    raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")


__all__ = [
    "IndexBuilder",
    "IndexedFile",
    "InMemoryIndexBuilder",
    "InMemorySessionIndex",
    "SessionIndex",
    "VectorStoreUnavailableError",
    "create_index_builder",
]
