"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True, slots=True)
class RemoteFile:
    """A file listed by the document source."""

    id: str
    name: str
    mime_type: str
    web_view_link: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    """A span of extracted text tagged with the metadata of its source file."""

    content: str
    file_name: str
    file_id: str
    mime_type: str
    chunk_index: int
    total_chunks: int
    web_view_link: Optional[str] = None
    identifiers: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not 0 <= self.chunk_index < self.total_chunks:
            raise ValueError(
                f"chunk_index {self.chunk_index} out of range for {self.total_chunks} chunks"
            )

    @property
    def page_number(self) -> int:
        """1-based citation number derived from the chunk position."""

        return self.chunk_index + 1

    def metadata(self) -> dict[str, object]:
        return {
            "file_name": self.file_name,
            "file_id": self.file_id,
            "mime_type": self.mime_type,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "web_view_link": self.web_view_link or "",
            "identifiers": ",".join(self.identifiers),
        }
