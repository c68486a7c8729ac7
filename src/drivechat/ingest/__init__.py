"""Ingestion of remote documents into per-session chunk collections."""

from .chunking import ChunkingConfig, TextChunker
from .extractors import ContentExtractor
from .models import DocumentChunk, RemoteFile

__all__ = ["ChunkingConfig", "ContentExtractor", "DocumentChunk", "RemoteFile", "TextChunker"]
