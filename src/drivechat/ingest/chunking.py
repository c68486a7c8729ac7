"""Chunking utilities for breaking text into embedding-friendly units."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from drivechat.identifiers import find_identifiers

from .models import DocumentChunk, RemoteFile

_FALLBACK_SENTENCE_RE = re.compile(r"(.+?(?:[.!?](?=\s)|$))", re.DOTALL)
LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChunkingConfig:
    chunk_size: int = 1000
    chunk_overlap: int = 200


class TextChunker:
    """Split text into overlapping chunks respecting semantic boundaries."""

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def split_text(self, text: str) -> List[str]:
        return [chunk for chunk, _, _ in self._chunk_text(text)]

    def chunk_document(self, text: str, remote_file: RemoteFile) -> List[DocumentChunk]:
        """Split *text* and tag every span with the metadata of *remote_file*."""

        spans = self.split_text(text)
        total = len(spans)
        chunks = [
            DocumentChunk(
                content=span,
                file_name=remote_file.name,
                file_id=remote_file.id,
                mime_type=remote_file.mime_type,
                chunk_index=index,
                total_chunks=total,
                web_view_link=remote_file.web_view_link,
                identifiers=find_identifiers(span),
            )
            for index, span in enumerate(spans)
        ]
        LOGGER.debug("Split %s into %d chunks", remote_file.name, total)
        return chunks

    def _chunk_text(self, text: str) -> Iterator[Tuple[str, int, int]]:
        if not text:
            return
        chunk_size = max(self.config.chunk_size, 1)
        overlap = max(min(self.config.chunk_overlap, chunk_size - 1), 0)
        text_length = len(text)
        start = 0
        while start < text_length:
            tentative_end = min(start + chunk_size, text_length)
            chunk_end = self._find_semantic_break(text, start, tentative_end)
            if chunk_end <= start:
                chunk_end = tentative_end
            raw_chunk = text[start:chunk_end]
            stripped_chunk = raw_chunk.strip()
            if not stripped_chunk:
                start = chunk_end
                continue
            leading_ws = len(raw_chunk) - len(raw_chunk.lstrip())
            trailing_ws = len(raw_chunk) - len(raw_chunk.rstrip())
            final_start = start + leading_ws
            final_end = chunk_end - trailing_ws
            yield text[final_start:final_end], final_start, final_end
            if chunk_end >= text_length:
                break
            next_start = final_end - overlap
            if next_start <= final_start:
                next_start = final_end
            start = max(0, next_start)

    def _find_semantic_break(self, text: str, start: int, tentative_end: int) -> int:
        if tentative_end >= len(text):
            return len(text)
        segment = text[start:tentative_end]
        minimum = self.config.chunk_size // 4
        paragraph_break = segment.rfind("\n\n")
        if paragraph_break != -1 and paragraph_break >= self.config.chunk_size // 3:
            return start + paragraph_break + 2
        line_break = segment.rfind("\n")
        if line_break != -1 and line_break >= minimum:
            return start + line_break + 1
        sentence_break = self._find_sentence_break(segment)
        if sentence_break is not None and sentence_break >= minimum:
            return start + sentence_break
        word_break = segment.rfind(" ")
        if word_break != -1 and word_break >= minimum:
            return start + word_break
        return tentative_end

    @staticmethod
    def _find_sentence_break(segment: str) -> int | None:
        matches = list(_FALLBACK_SENTENCE_RE.finditer(segment))
        if len(matches) < 2:
            return None
        # The last match runs to the end of the window, so use the one before it.
        return matches[-2].end()
