"""Progress tracking for multi-step ingestion runs."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from drivechat.config import DEFAULT_TOTAL_STEPS
from drivechat.session_store import InMemorySessionRepository, SessionRepository
from drivechat.telemetry import emit_progress_event

LOGGER = logging.getLogger(__name__)


class ProgressState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """Immutable snapshot of an ingestion run as seen by polling clients."""

    current_step: int = 0
    total_steps: int = DEFAULT_TOTAL_STEPS
    status: str = "Not started"
    current_file: str = ""
    files_processed: int = 0
    total_files: int = 0
    state: ProgressState = ProgressState.NOT_STARTED

    @property
    def percentage(self) -> int:
        if self.total_steps <= 0:
            return 0
        return (self.current_step * 100) // self.total_steps

    def to_dict(self) -> dict[str, object]:
        return {
            "currentStep": self.current_step,
            "totalSteps": self.total_steps,
            "status": self.status,
            "currentFile": self.current_file,
            "filesProcessed": self.files_processed,
            "totalFiles": self.total_files,
            "percentage": self.percentage,
            "state": self.state.value,
        }


NOT_STARTED = ProgressRecord()


class ProgressTracker:
    """Keyed progress store written by the ingestion pipeline.

    Within one run the step never moves backwards: a smaller ``step`` than the
    one already recorded is clamped to the recorded value. Only :meth:`start`
    resets a session back to step zero.
    """

    def __init__(self, repository: SessionRepository[ProgressRecord] | None = None) -> None:
        self._repository: SessionRepository[ProgressRecord] = (
            repository if repository is not None else InMemorySessionRepository()
        )
        self._lock = threading.Lock()

    def start(self, session_id: str, total_steps: int = DEFAULT_TOTAL_STEPS, status: str = "Starting") -> ProgressRecord:
        record = ProgressRecord(total_steps=total_steps, status=status, state=ProgressState.RUNNING)
        with self._lock:
            self._repository.set(session_id, record)
        self._log(session_id, record)
        return record

    def update(
        self,
        session_id: str,
        step: int,
        total_steps: int,
        status: str,
        current_file: Optional[str] = None,
        files_processed: Optional[int] = None,
        total_files: Optional[int] = None,
        state: ProgressState = ProgressState.RUNNING,
    ) -> ProgressRecord:
        with self._lock:
            previous = self._repository.get(session_id) or NOT_STARTED
            if step < previous.current_step:
                LOGGER.warning(
                    "Progress for session %s would regress from step %s to %s; keeping %s",
                    session_id,
                    previous.current_step,
                    step,
                    previous.current_step,
                )
                step = previous.current_step

            total = previous.total_files if total_files is None else max(total_files, 0)
            processed = previous.files_processed if files_processed is None else max(files_processed, 0)
            record = replace(
                previous,
                current_step=min(max(step, 0), total_steps),
                total_steps=total_steps,
                status=status,
                current_file=current_file if current_file is not None else "",
                files_processed=min(processed, total) if total else processed,
                total_files=total,
                state=state,
            )
            self._repository.set(session_id, record)

        self._log(session_id, record)
        return record

    def fail(self, session_id: str, status: str) -> ProgressRecord:
        """Record a terminal error without moving the step backwards."""

        current = self.get(session_id)
        return self.update(
            session_id,
            current.current_step,
            current.total_steps,
            status,
            current_file="",
            state=ProgressState.ERROR,
        )

    def get(self, session_id: str) -> ProgressRecord:
        record = self._repository.get(session_id)
        return record if record is not None else NOT_STARTED

    def has(self, session_id: str) -> bool:
        return self._repository.has(session_id)

    @staticmethod
    def _log(session_id: str, record: ProgressRecord) -> None:
        emit_progress_event(
            session_id=session_id,
            step=record.current_step,
            total_steps=record.total_steps,
            percentage=record.percentage,
            status=record.status,
            current_file=record.current_file,
            files_processed=record.files_processed,
            total_files=record.total_files,
            state=record.state.value,
        )
