"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import platform
import sys
import traceback
from typing import Any, Iterable, Optional

LOGGER = logging.getLogger("drivechat.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    session_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if session_id:
        event["session_id"] = session_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event(*, providers: Iterable[str], vector_store: str, embedding_backend: str) -> None:
    log_event(
        LOGGER,
        "app.startup",
        details={
            "python": sys.version.split()[0],
            "platform": platform.platform(),
            "providers": list(providers),
            "vector_store": vector_store,
            "embedding_backend": embedding_backend,
        },
    )


def emit_config_check(*, session_id: str, presence: dict[str, str], missing: list[str]) -> None:
    log_event(
        LOGGER,
        "ingest.config_check",
        level="error" if missing else "info",
        session_id=session_id,
        details={"presence": presence, "missing": missing},
    )


def emit_extraction_event(
    *,
    file_name: str,
    mime_type: str,
    bytes_in: int,
    chars_out: int,
    duration_ms: float,
    outcome: str,
    error: str | None = None,
) -> None:
    details: dict[str, Any] = {
        "file": file_name,
        "mime_type": mime_type,
        "bytes_in": bytes_in,
        "chars_out": chars_out,
        "outcome": outcome,
    }
    if error:
        details["error"] = error
    log_event(
        LOGGER,
        "extract.file",
        level="warning" if outcome != "success" else "info",
        duration_ms=duration_ms,
        details=details,
    )


def emit_progress_event(
    *,
    session_id: str,
    step: int,
    total_steps: int,
    percentage: int,
    status: str,
    current_file: str,
    files_processed: int,
    total_files: int,
    state: str,
) -> None:
    log_event(
        LOGGER,
        "ingest.progress",
        session_id=session_id,
        details={
            "step": f"{step}/{total_steps}",
            "percentage": percentage,
            "status": status,
            "file": current_file,
            "files": f"{files_processed}/{total_files}",
            "state": state,
        },
    )


def emit_ingest_event(
    step: str,
    *,
    session_id: str,
    file_name: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    chunks: int | None = None,
    files: int | None = None,
    status: str | None = None,
    cached: bool | None = None,
    level: str = "info",
    error: BaseException | str | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "chunks": chunks,
        "files": files,
    }
    if status is not None:
        details["status"] = status
    if cached is not None:
        details["cached"] = cached
    if error is not None:
        details["error"] = str(error)
    log_event(LOGGER, step, level=level, session_id=session_id, duration_ms=duration_ms, details=details)


def emit_retriever_event(
    *,
    session_id: str,
    query: str,
    query_type: str,
    top_k: int,
    escalation: str | None,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "query_type": query_type,
        "top_k": top_k,
        "escalation": escalation,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", session_id=session_id, duration_ms=duration_ms, details=details)


def emit_provider_attempt(
    *,
    provider: str,
    outcome: str,
    duration_ms: float,
    timeout: float,
    error: BaseException | None = None,
    tripped: bool = False,
) -> None:
    details: dict[str, Any] = {
        "provider": provider,
        "outcome": outcome,
        "timeout_s": timeout,
        "circuit_opened": tripped,
    }
    if error is not None:
        details["error"] = str(error)
    log_event(
        LOGGER,
        "llm.provider.attempt",
        level="warning" if error is not None else "info",
        duration_ms=duration_ms,
        details=details,
    )


def emit_fallback_result(
    *,
    attempted: list[str],
    skipped: list[str],
    provider_used: str | None,
    duration_ms: float,
    prompt_len: int,
) -> None:
    log_event(
        LOGGER,
        "llm.fallback.result",
        level="info" if provider_used else "warning",
        duration_ms=duration_ms,
        details={
            "attempted": attempted,
            "skipped": skipped,
            "provider_used": provider_used or "synthesized",
            "prompt_len": prompt_len,
        },
    )


def emit_embeddings_event(
    *,
    model: str,
    count: int,
    duration_ms: float,
    errors: Iterable[str] | None = None,
) -> None:
    details: dict[str, Any] = {"model": model, "count": count}
    if errors:
        details["errors"] = list(errors)
    log_event(
        LOGGER,
        "embeddings.encode",
        level="warning" if errors else "info",
        duration_ms=duration_ms,
        details=details,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    session_id: str | None = None,
    code: object | None = None,
    suggestion: str | None = None,
) -> None:
    details: dict[str, Any] = {"module": module, "message": str(error), "kind": type(error).__name__}
    if code is not None:
        details["code"] = code
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        session_id=session_id,
        details=details,
        exc=error,
    )
