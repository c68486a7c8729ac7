"""Contract for remote document sources."""
from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from drivechat.ingest.models import RemoteFile


@runtime_checkable
class DocumentSource(Protocol):
    """Lists the files of a remote folder and downloads their raw bytes."""

    async def list_files(self, folder_id: str) -> List[RemoteFile]:
        """Return every file directly inside *folder_id*."""
        ...

    async def fetch_bytes(self, file_id: str) -> bytes:
        """Download the content of *file_id*."""
        ...
