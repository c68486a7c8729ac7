"""Answer chat questions against a session's document index."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from drivechat.llm.fallback import ProviderFallbackExecutor
from drivechat.logging_config import AUDIT_LOGGER_NAME
from drivechat.prompt_builder import build_prompt
from drivechat.retrieval.router import QueryRouter, citations
from drivechat.session_store import SessionStore

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

NO_DOCUMENTS_MESSAGE = (
    "I don't have access to any documents yet. Please wait for the document ingestion "
    "to complete, or refresh the page to restart the process."
)
NO_RESULTS_MESSAGE = (
    "I couldn't find any relevant information in the documents to answer your question. "
    "Could you try rephrasing your question or asking about something else?"
)


@dataclass(slots=True)
class ChatAnswer:
    content: str
    sources: List[Dict[str, object]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ChatService:
    """Retrieve context for a question and obtain an answer via provider fallback."""

    def __init__(
        self,
        store: SessionStore,
        executor: ProviderFallbackExecutor,
        *,
        router: Optional[QueryRouter] = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.router = router or QueryRouter()

    async def answer(self, session_id: str, question: str) -> ChatAnswer:
        started = time.perf_counter()
        index = self.store.indices.get(session_id)
        if index is None:
            LOGGER.info("No vector index found for session %s", session_id)
            return ChatAnswer(content=NO_DOCUMENTS_MESSAGE, metadata={"indexed": False})

        retrieval = await self.router.retrieve(index, question, session_id=session_id)
        metadata: Dict[str, Any] = {
            "indexed": True,
            "queryType": retrieval.plan.kind,
            "escalation": retrieval.escalation,
            "chunksRetrieved": len(retrieval.chunks),
        }
        if not retrieval.found:
            metadata["durationMs"] = round((time.perf_counter() - started) * 1000, 3)
            self._audit(session_id, question, [], provider=None)
            return ChatAnswer(content=NO_RESULTS_MESSAGE, metadata=metadata)

        prompt = build_prompt(retrieval.plan, question, retrieval.context)
        result = await self.executor.generate(prompt, retrieval.chunks)
        metadata.update(
            {
                "provider": result.provider,
                "providersAttempted": result.attempted,
                "providersSkipped": result.skipped,
                "synthesized": result.synthesized,
                "durationMs": round((time.perf_counter() - started) * 1000, 3),
            }
        )
        sources = citations(retrieval.chunks)
        self._audit(session_id, question, sources, provider=result.provider)
        return ChatAnswer(content=result.text, sources=sources, metadata=metadata)

    @staticmethod
    def _audit(
        session_id: str, question: str, sources: List[Dict[str, object]], *, provider: Optional[str]
    ) -> None:
        AUDIT_LOGGER.info(
            {
                "event": "query",
                "session_id": session_id,
                "question": question,
                "provider": provider,
                "sources": [source["fileName"] for source in sources],
            }
        )
