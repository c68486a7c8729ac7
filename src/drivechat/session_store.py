"""Process-wide keyed stores holding per-session state.

State lives in memory only and disappears with the process. Callers go
through :class:`SessionRepository` so the in-memory maps can be replaced by a
networked cache without touching them.
"""
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Dict, Generic, List, Optional, Protocol, TypeVar

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from drivechat.progress import ProgressRecord
    from drivechat.vectorstore import SessionIndex

T = TypeVar("T")


class SessionRepository(Protocol[T]):
    """Keyed storage contract used for session-scoped state."""

    def get(self, session_id: str) -> Optional[T]:
        ...

    def set(self, session_id: str, value: T) -> None:
        ...

    def has(self, session_id: str) -> bool:
        ...

    def keys(self) -> List[str]:
        ...

    def clear(self) -> None:
        ...


class InMemorySessionRepository(Generic[T]):
    """Lock-guarded dictionary keyed by session id."""

    def __init__(self) -> None:
        self._items: Dict[str, T] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[T]:
        with self._lock:
            return self._items.get(session_id)

    def set(self, session_id: str, value: T) -> None:
        with self._lock:
            self._items[session_id] = value

    def has(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._items

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SessionStore:
    """Bundle of the two session-keyed caches: vector indices and progress."""

    def __init__(
        self,
        *,
        indices: SessionRepository["SessionIndex"] | None = None,
        progress: SessionRepository["ProgressRecord"] | None = None,
    ) -> None:
        self.indices: SessionRepository["SessionIndex"] = indices if indices is not None else InMemorySessionRepository()
        self.progress: SessionRepository["ProgressRecord"] = progress if progress is not None else InMemorySessionRepository()

    def clear(self) -> None:
        self.indices.clear()
        self.progress.clear()
