"""Environment-driven settings for the document chat service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_TOTAL_STEPS = 10
DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ("gemini", "openai", "local")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _provider_order(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_PROVIDER_ORDER
    names = [item.strip().lower() for item in raw.split(",")]
    ordered: list[str] = []
    for name in names:
        if name and name not in ordered:
            ordered.append(name)
    return tuple(ordered) or DEFAULT_PROVIDER_ORDER


@dataclass(slots=True)
class Settings:
    """Runtime configuration resolved from the process environment."""

    google_client_email: Optional[str] = None
    google_private_key: Optional[str] = None
    drive_folder_id: Optional[str] = None
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    embedding_backend: str = "gemini"
    embedding_model: str = "models/text-embedding-004"
    gemini_chat_model: str = "gemini-2.0-flash"
    openai_chat_model: str = "gpt-4o"
    local_model_path: Optional[str] = None
    llm_temperature: float = 0.7
    provider_order: tuple[str, ...] = field(default=DEFAULT_PROVIDER_ORDER)
    provider_cooldown_seconds: float = 60.0
    vector_store: str = "memory"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    total_steps: int = DEFAULT_TOTAL_STEPS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        private_key = _clean(env.get("GOOGLE_PRIVATE_KEY"))
        if private_key:
            # Keys pasted into .env files usually carry literal "\n" sequences.
            private_key = private_key.replace("\\n", "\n")

        return cls(
            google_client_email=_clean(env.get("GOOGLE_CLIENT_EMAIL")),
            google_private_key=private_key,
            drive_folder_id=_clean(env.get("GOOGLE_DRIVE_FOLDER_ID")),
            gemini_api_key=_clean(env.get("GEMINI_API_KEY")),
            openai_api_key=_clean(env.get("OPENAI_API_KEY")),
            embedding_backend=(env.get("EMBEDDING_BACKEND") or "gemini").strip().lower(),
            embedding_model=_clean(env.get("EMBEDDING_MODEL")) or "models/text-embedding-004",
            gemini_chat_model=_clean(env.get("GEMINI_CHAT_MODEL")) or "gemini-2.0-flash",
            openai_chat_model=_clean(env.get("OPENAI_CHAT_MODEL")) or "gpt-4o",
            local_model_path=_clean(env.get("LLM_MODEL_PATH")),
            llm_temperature=_float_from_env(env, "LLM_TEMPERATURE", 0.7),
            provider_order=_provider_order(env.get("LLM_PROVIDER_ORDER")),
            provider_cooldown_seconds=_float_from_env(env, "PROVIDER_COOLDOWN_SECONDS", 60.0),
            vector_store=(env.get("VECTOR_STORE") or "memory").strip().lower(),
            chunk_size=_int_from_env(env, "CHUNK_SIZE", 1000),
            chunk_overlap=_int_from_env(env, "CHUNK_OVERLAP", 200),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        )

    def missing_ingestion_settings(self) -> list[str]:
        """Return the environment variable names ingestion needs but lacks."""

        required = {
            "GOOGLE_CLIENT_EMAIL": self.google_client_email,
            "GOOGLE_PRIVATE_KEY": self.google_private_key,
            "GOOGLE_DRIVE_FOLDER_ID": self.drive_folder_id,
        }
        if self.embedding_backend == "gemini":
            required["GEMINI_API_KEY"] = self.gemini_api_key
        return [name for name, value in required.items() if not value]

    def presence_report(self) -> dict[str, str]:
        """Describe which credentials are present without revealing them."""

        values = {
            "GOOGLE_CLIENT_EMAIL": self.google_client_email,
            "GOOGLE_PRIVATE_KEY": self.google_private_key,
            "GOOGLE_DRIVE_FOLDER_ID": self.drive_folder_id,
            "GEMINI_API_KEY": self.gemini_api_key,
            "OPENAI_API_KEY": self.openai_api_key,
        }
        return {name: "present" if value else "missing" for name, value in values.items()}


@lru_cache()
def get_settings() -> Settings:
    """Return the cached process settings."""

    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
