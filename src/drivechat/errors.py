"""Exception hierarchy shared across the service."""
from __future__ import annotations

from typing import Iterable, Optional


class DriveChatError(RuntimeError):
    """Base class for errors raised by the document chat service."""


class IngestConfigurationError(DriveChatError):
    """Raised when required credentials or identifiers are not configured."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Missing required configuration: " + ", ".join(self.missing)
        )


class IngestError(DriveChatError):
    """Raised when an ingestion run fails outside the per-file error boundary."""

    def __init__(self, message: str, *, code: object | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.__cause__ = cause


class DocumentSourceError(DriveChatError):
    """Raised when the remote document source rejects or fails a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = status_code


class ProviderError(DriveChatError):
    """Raised when a chat-completion or embedding provider call fails."""

    def __init__(self, provider: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.status_code = status_code
        self.code = status_code


class ProviderTimeoutError(ProviderError):
    """Raised when a provider does not answer within its timeout."""

    def __init__(self, provider: str, timeout: float) -> None:
        super().__init__(provider, f"timed out after {timeout:.0f}s")
        self.timeout = timeout


class VectorStoreUnavailableError(DriveChatError):
    """Raised when the vector index backend cannot be initialised or queried."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


def error_code(error: BaseException) -> object | None:
    """Return the provider-specific code attached to *error*, if any."""

    for attribute in ("code", "status_code", "status"):
        value = getattr(error, attribute, None)
        if value is not None:
            return value
    return None
