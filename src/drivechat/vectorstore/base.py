"""Shared contract for immutable per-session vector indices."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

from drivechat.ingest.models import DocumentChunk, RemoteFile


@dataclass(frozen=True, slots=True)
class IndexedFile:
    """Summary of a file that contributed to a session index."""

    id: str
    name: str
    mime_type: str

    @classmethod
    def from_remote(cls, remote_file: RemoteFile) -> "IndexedFile":
        return cls(id=remote_file.id, name=remote_file.name, mime_type=remote_file.mime_type)


class SessionIndex(ABC):
    """Nearest-neighbour index over the chunks of one ingestion run.

    Built once and never mutated afterwards.
    """

    def __init__(self, chunks: Sequence[DocumentChunk], files: Sequence[IndexedFile]) -> None:
        self._chunks: tuple[DocumentChunk, ...] = tuple(chunks)
        self._files: tuple[IndexedFile, ...] = tuple(files)

    @property
    def chunks(self) -> tuple[DocumentChunk, ...]:
        return self._chunks

    @property
    def files(self) -> tuple[IndexedFile, ...]:
        return self._files

    def __len__(self) -> int:
        return len(self._chunks)

    @abstractmethod
    async def search(self, query: str, k: int) -> List[DocumentChunk]:
        """Return up to *k* chunks ranked by similarity to *query*."""


class IndexBuilder(ABC):
    """Factory turning embedded chunks into a :class:`SessionIndex`."""

    @abstractmethod
    async def build(
        self, chunks: Sequence[DocumentChunk], files: Sequence[IndexedFile]
    ) -> SessionIndex:
        """Embed *chunks* and return a searchable index."""
