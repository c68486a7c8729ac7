"""Session-scoped ingestion of a remote folder into a searchable index."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from drivechat.config import Settings
from drivechat.errors import IngestConfigurationError, IngestError, error_code
from drivechat.logging_config import AUDIT_LOGGER_NAME
from drivechat.progress import ProgressState, ProgressTracker
from drivechat.session_store import SessionStore
from drivechat.sources.base import DocumentSource
from drivechat.telemetry import emit_config_check, emit_exception, emit_ingest_event
from drivechat.vectorstore.base import IndexBuilder, IndexedFile, SessionIndex

from .chunking import ChunkingConfig, TextChunker
from .extractors import ContentExtractor, Extraction
from .models import DocumentChunk, RemoteFile

LOGGER = logging.getLogger(__name__)

NO_FILES_MESSAGE = "No files found in the specified folder."
NO_CONTENT_MESSAGE = "No processable content found in documents."
CACHED_MESSAGE = "Documents already processed for this session."

SourceFactory = Callable[[Settings], DocumentSource]
IndexBuilderFactory = Callable[[Settings], IndexBuilder]


def _drive_source(settings: Settings) -> DocumentSource:
    from drivechat.sources.google_drive import GoogleDriveSource

    return GoogleDriveSource.from_service_account(
        settings.google_client_email or "", settings.google_private_key or ""
    )


def _default_index_builder(settings: Settings) -> IndexBuilder:
    from drivechat.embeddings import create_embedding_provider
    from drivechat.vectorstore import create_index_builder

    return create_index_builder(settings, create_embedding_provider(settings))


@dataclass(slots=True)
class IngestOutcome:
    """Terminal result of an ingestion run that did not fail."""

    status: str
    session_id: str
    message: str
    files: List[IndexedFile] = field(default_factory=list)
    total_chunks: int = 0
    cached: bool = False
    duration_seconds: float = 0.0

    @property
    def files_processed(self) -> int:
        return len(self.files)


class IngestionPipeline:
    """Drive listing, extraction, chunking and indexing for one session.

    Files are processed one at a time so that progress updates stay ordered.
    A failure on a single file is recorded and skipped; anything else aborts
    the run, leaves an ``ERROR:`` progress record and raises
    :class:`IngestError`.
    """

    _AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        tracker: ProgressTracker,
        *,
        source: Optional[DocumentSource] = None,
        source_factory: SourceFactory = _drive_source,
        index_builder: Optional[IndexBuilder] = None,
        index_builder_factory: IndexBuilderFactory = _default_index_builder,
        extractor: Optional[ContentExtractor] = None,
        chunker: Optional[TextChunker] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.tracker = tracker
        self._source = source
        self._source_factory = source_factory
        self._index_builder = index_builder
        self._index_builder_factory = index_builder_factory
        self.extractor = extractor or ContentExtractor()
        self.chunker = chunker or TextChunker(
            ChunkingConfig(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)
        )

    async def run(self, session_id: str) -> IngestOutcome:
        started = time.perf_counter()
        cached = self.store.indices.get(session_id)
        if cached is not None:
            LOGGER.info("Vector index already exists for session %s", session_id)
            return self._completed(
                self._ready(session_id, cached, CACHED_MESSAGE, cached=True, started=started)
            )

        total_steps = self.settings.total_steps
        self.tracker.start(session_id, total_steps, "Initializing connection to Google Drive...")

        missing = self.settings.missing_ingestion_settings()
        emit_config_check(
            session_id=session_id, presence=self.settings.presence_report(), missing=missing
        )
        if missing:
            self.tracker.fail(session_id, "ERROR: Missing required configuration")
            raise IngestConfigurationError(missing)

        try:
            outcome = await self._ingest(session_id, started)
        except Exception as exc:
            code = error_code(exc)
            emit_exception(
                module=__name__,
                error=exc,
                session_id=session_id,
                code=code,
                suggestion="Check the Google Drive credentials and folder sharing settings.",
            )
            self.tracker.fail(session_id, f"ERROR: {exc}")
            if isinstance(exc, IngestError):
                raise
            raise IngestError(str(exc), code=code, cause=exc) from exc
        return self._completed(outcome)

    @staticmethod
    def _completed(outcome: IngestOutcome) -> IngestOutcome:
        emit_ingest_event(
            "ingest.completed",
            session_id=outcome.session_id,
            duration_ms=outcome.duration_seconds * 1000,
            chunks=outcome.total_chunks,
            files=outcome.files_processed,
            status=outcome.status,
            cached=outcome.cached,
        )
        return outcome

    async def _ingest(self, session_id: str, started: float) -> IngestOutcome:
        total_steps = self.settings.total_steps
        update = self.tracker.update

        update(session_id, 1, total_steps, "Creating Google Drive authentication...")
        source = self._source or self._source_factory(self.settings)

        update(session_id, 2, total_steps, "Connecting to Google Drive API...")
        update(session_id, 3, total_steps, "Scanning documents in folder...")
        remote_files = await source.list_files(self.settings.drive_folder_id or "")

        if not remote_files:
            update(
                session_id,
                total_steps,
                total_steps,
                "No documents found in folder",
                files_processed=0,
                total_files=0,
                state=ProgressState.EMPTY,
            )
            emit_ingest_event("ingest.empty", session_id=session_id, files=0)
            return IngestOutcome(
                status="empty",
                session_id=session_id,
                message=NO_FILES_MESSAGE,
                duration_seconds=time.perf_counter() - started,
            )

        total_files = len(remote_files)
        update(
            session_id,
            4,
            total_steps,
            f"Found {total_files} documents. Initializing processing...",
            files_processed=0,
            total_files=total_files,
        )
        update(session_id, 5, total_steps, "Processing documents...")

        all_chunks: List[DocumentChunk] = []
        for position, remote_file in enumerate(remote_files):
            update(
                session_id,
                5,
                total_steps,
                f"Processing: {remote_file.name}",
                current_file=remote_file.name,
                files_processed=position,
            )
            try:
                file_chunks, extraction = await self._process_file(session_id, source, remote_file)
            except Exception as exc:
                LOGGER.error(
                    {
                        "event": "ingest_file_failed",
                        "session_id": session_id,
                        "file": remote_file.name,
                        "file_id": remote_file.id,
                        "error": str(exc),
                        "code": error_code(exc),
                    },
                    exc_info=(exc.__class__, exc, exc.__traceback__),
                )
                self._log_ingest_audit(session_id, remote_file, 0, error=str(exc))
                update(
                    session_id,
                    5,
                    total_steps,
                    f"Error processing: {remote_file.name}",
                    current_file=remote_file.name,
                    files_processed=position + 1,
                )
                continue

            # Unreadable files keep their placeholder chunk so they stay listed.
            all_chunks.extend(file_chunks)
            self._log_ingest_audit(session_id, remote_file, len(file_chunks), error=extraction.error)
            label = "Error processing" if extraction.failed else "Processed"
            update(
                session_id,
                5,
                total_steps,
                f"{label}: {remote_file.name}",
                current_file=remote_file.name,
                files_processed=position + 1,
            )

        if not all_chunks:
            update(
                session_id,
                total_steps,
                total_steps,
                "No processable content found",
                state=ProgressState.EMPTY,
            )
            emit_ingest_event("ingest.empty", session_id=session_id, files=total_files, chunks=0)
            return IngestOutcome(
                status="empty",
                session_id=session_id,
                message=NO_CONTENT_MESSAGE,
                duration_seconds=time.perf_counter() - started,
            )

        update(
            session_id,
            7,
            total_steps,
            f"Creating searchable index from {len(all_chunks)} document chunks...",
        )
        builder = self._index_builder or self._index_builder_factory(self.settings)
        build_started = time.perf_counter()
        indexed_files = [IndexedFile.from_remote(remote_file) for remote_file in remote_files]
        index = await builder.build(all_chunks, indexed_files)
        emit_ingest_event(
            "ingest.index_built",
            session_id=session_id,
            duration_ms=(time.perf_counter() - build_started) * 1000,
            chunks=len(all_chunks),
            files=total_files,
        )

        update(session_id, 9, total_steps, "Finalizing document index...")
        self.store.indices.set(session_id, index)

        update(
            session_id,
            total_steps,
            total_steps,
            f"Successfully processed {total_files} documents into {len(all_chunks)} searchable chunks",
            state=ProgressState.READY,
        )
        message = f"Successfully processed {total_files} file(s) into {len(all_chunks)} searchable chunks."
        return self._ready(session_id, index, message, cached=False, started=started)

    async def _process_file(
        self, session_id: str, source: DocumentSource, remote_file: RemoteFile
    ) -> Tuple[List[DocumentChunk], Extraction]:
        started = time.perf_counter()
        data = await source.fetch_bytes(remote_file.id)
        extraction = await asyncio.to_thread(
            self.extractor.extract_result, data, remote_file.mime_type, remote_file.name
        )
        if not extraction.text.strip():
            LOGGER.info("File %s has no processable content", remote_file.name)
            return [], extraction

        chunks = self.chunker.chunk_document(extraction.text, remote_file)
        emit_ingest_event(
            "ingest.file",
            session_id=session_id,
            file_name=remote_file.name,
            size_bytes=len(data),
            duration_ms=(time.perf_counter() - started) * 1000,
            chunks=len(chunks),
            level="warning" if extraction.failed else "info",
            error=extraction.error,
        )
        return chunks, extraction

    def _ready(
        self,
        session_id: str,
        index: SessionIndex,
        message: str,
        *,
        cached: bool,
        started: float,
    ) -> IngestOutcome:
        return IngestOutcome(
            status="ready",
            session_id=session_id,
            message=message,
            files=list(index.files),
            total_chunks=len(index),
            cached=cached,
            duration_seconds=time.perf_counter() - started,
        )

    def _log_ingest_audit(
        self, session_id: str, remote_file: RemoteFile, chunks: int, *, error: str | None = None
    ) -> None:
        entry = {
            "event": "ingest_file",
            "session_id": session_id,
            "filename": remote_file.name,
            "mime_type": remote_file.mime_type,
            "chunks": chunks,
        }
        if error is not None:
            entry["error"] = error
        self._AUDIT_LOGGER.info(entry)
