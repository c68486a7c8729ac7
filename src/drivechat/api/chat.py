"""Chat endpoint answering questions about the ingested documents."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from drivechat.errors import ProviderError, ProviderTimeoutError, VectorStoreUnavailableError, error_code
from drivechat.services.chat import ChatService
from drivechat.telemetry import emit_exception

from .dependencies import get_chat_service
from .ingest import DEFAULT_SESSION_ID

LOGGER = logging.getLogger(__name__)

TIMEOUT_MESSAGE = (
    "The answer took too long to generate. Please try again, or ask a more specific question."
)
UPSTREAM_MESSAGE = (
    "The AI service is temporarily unavailable. Please try again in a few moments."
)
GENERIC_MESSAGE = "I encountered an error while processing your question. Please try again."

router = APIRouter(tags=["chat"])


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class Source(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    file_id: str = Field(alias="fileId")
    page_number: int = Field(alias="pageNumber")


class ChatResponse(BaseModel):
    role: str = "assistant"
    content: str
    sources: List[Source] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _failure_message(error: BaseException) -> tuple[str, str]:
    if isinstance(error, (ProviderTimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout", TIMEOUT_MESSAGE
    if isinstance(error, (ProviderError, VectorStoreUnavailableError, httpx.HTTPError)):
        return "upstream", UPSTREAM_MESSAGE
    return "internal", GENERIC_MESSAGE


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Answer the last user message using the session's documents."""

    session_id = request.session_id or DEFAULT_SESSION_ID
    last_message = request.messages[-1] if request.messages else None
    if last_message is None or last_message.role != "user":
        raise HTTPException(status_code=400, detail="No user message found")

    try:
        answer = await service.answer(session_id, last_message.content)
    except Exception as exc:
        tracking_id = uuid.uuid4().hex
        kind, message = _failure_message(exc)
        emit_exception(
            module=__name__,
            error=exc,
            req_id=tracking_id,
            session_id=session_id,
            code=error_code(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "role": "assistant",
                "content": message,
                "error": kind,
                "trackingId": tracking_id,
            },
        )

    return ChatResponse(
        content=answer.content,
        sources=[Source.model_validate(source) for source in answer.sources],
        metadata=answer.metadata,
    )
