"""FastAPI dependency providers for the shared service objects."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from drivechat.config import Settings, get_settings
from drivechat.ingest.pipeline import IngestionPipeline
from drivechat.llm.fallback import ProviderFallbackExecutor
from drivechat.llm.providers import create_providers
from drivechat.progress import ProgressTracker
from drivechat.services.chat import ChatService
from drivechat.session_store import SessionStore


@lru_cache()
def get_session_store() -> SessionStore:
    """Return the process-wide session store."""

    return SessionStore()


@lru_cache()
def get_progress_tracker() -> ProgressTracker:
    return ProgressTracker(get_session_store().progress)


@lru_cache()
def get_fallback_executor() -> ProviderFallbackExecutor:
    """Return the executor holding provider breakers for the whole process."""

    settings = get_settings()
    return ProviderFallbackExecutor(
        create_providers(settings), cooldown_seconds=settings.provider_cooldown_seconds
    )


def get_ingestion_pipeline(
    settings: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> IngestionPipeline:
    return IngestionPipeline(settings, store, tracker)


def get_chat_service(
    store: SessionStore = Depends(get_session_store),
    executor: ProviderFallbackExecutor = Depends(get_fallback_executor),
) -> ChatService:
    return ChatService(store, executor)


def reset_dependency_caches() -> None:
    """Drop cached singletons (primarily for testing)."""

    get_session_store.cache_clear()  # type: ignore[attr-defined]
    get_progress_tracker.cache_clear()  # type: ignore[attr-defined]
    get_fallback_executor.cache_clear()  # type: ignore[attr-defined]
