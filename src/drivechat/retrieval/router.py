"""Session retrieval with escalating search strategies."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from drivechat.ingest.models import DocumentChunk
from drivechat.telemetry import emit_retriever_event
from drivechat.vectorstore.base import SessionIndex

from .classification import OverviewQuery, QueryPlan, SpecificQuery, classify_query

LOGGER = logging.getLogger(__name__)

FILE_ESCALATION_TOP_K = 50
ENTITY_ESCALATION_TOP_K = 100
PRIMARY_RESULTS_KEPT = 2
OVERVIEW_MAX_FILES = 15
MAX_CHUNK_CHARS = 4000
CONTEXT_SEPARATOR = "\n\n---\n\n"
ENTITY_KEYWORD_PREFIXES = ("Aufzug", "Anlage", "elevator", "Fabriknummer")


@dataclass(slots=True)
class RetrievalResult:
    """Chunks selected for a question and the context string built from them.

    ``chunks`` is the full relevant list used for citations; ``context_chunks``
    is the subset rendered into ``context`` (deduplicated for overviews).
    """

    plan: QueryPlan
    chunks: List[DocumentChunk] = field(default_factory=list)
    context_chunks: List[DocumentChunk] = field(default_factory=list)
    context: str = ""
    escalation: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.chunks)


def entity_variants(entity_id: str) -> List[Tuple[str, str]]:
    """Return ``(query, needle)`` pairs tried in order for an identifier."""

    candidates: List[Tuple[str, str]] = [(entity_id, entity_id)]
    candidates.extend((f"{prefix} {entity_id}", entity_id) for prefix in ENTITY_KEYWORD_PREFIXES)
    stripped = entity_id.lstrip("0")
    if stripped:
        candidates.append((stripped, stripped))
    candidates.append((f"0{entity_id}", f"0{entity_id}"))
    if len(entity_id) > 8:
        candidates.append((entity_id[:8], entity_id[:8]))
        candidates.append((entity_id[-8:], entity_id[-8:]))

    variants: List[Tuple[str, str]] = []
    seen: set[str] = set()
    for query, needle in candidates:
        if query in seen:
            continue
        seen.add(query)
        variants.append((query, needle))
    return variants


def chunk_mentions(chunk: DocumentChunk, needle: str) -> bool:
    return needle in chunk.content or needle in chunk.file_name or needle in chunk.identifiers


def file_matches(chunk: DocumentChunk, token: str) -> bool:
    return token.lower() in chunk.file_name.lower()


def longest_chunk_per_file(chunks: Iterable[DocumentChunk], limit: int = OVERVIEW_MAX_FILES) -> List[DocumentChunk]:
    by_file: Dict[str, DocumentChunk] = {}
    for chunk in chunks:
        current = by_file.get(chunk.file_name)
        if current is None or len(chunk.content) > len(current.content):
            by_file[chunk.file_name] = chunk
    return list(by_file.values())[:limit]


def build_context(chunks: Sequence[DocumentChunk], max_chars: int = MAX_CHUNK_CHARS) -> str:
    sections = [
        f"Document {position} ({chunk.file_name}):\n{chunk.content[:max_chars]}"
        for position, chunk in enumerate(chunks, start=1)
    ]
    return CONTEXT_SEPARATOR.join(sections)


def citations(chunks: Sequence[DocumentChunk]) -> List[Dict[str, object]]:
    return [
        {"fileName": chunk.file_name, "fileId": chunk.file_id, "pageNumber": chunk.page_number}
        for chunk in chunks
    ]


def _prioritise(matches: Sequence[DocumentChunk], primary: Sequence[DocumentChunk]) -> List[DocumentChunk]:
    combined: List[DocumentChunk] = []
    for chunk in [*matches, *primary[:PRIMARY_RESULTS_KEPT]]:
        if chunk not in combined:
            combined.append(chunk)
    return combined


class QueryRouter:
    """Turn a question into a bounded, cited context for one session index."""

    async def retrieve(self, index: SessionIndex, question: str, *, session_id: str = "") -> RetrievalResult:
        started = time.perf_counter()
        plan = classify_query(question)
        primary = await index.search(question, plan.top_k)
        chunks = primary
        escalation: Optional[str] = None

        if isinstance(plan, SpecificQuery):
            if plan.file_token and not any(file_matches(chunk, plan.file_token) for chunk in primary):
                LOGGER.info("Target document %r not in primary results; expanding search", plan.file_token)
                expanded = await index.search(question, FILE_ESCALATION_TOP_K)
                matches = [chunk for chunk in expanded if file_matches(chunk, plan.file_token)]
                if matches:
                    chunks = _prioritise(matches, primary)
                    escalation = "file"
            if plan.entity_id and not any(chunk_mentions(chunk, plan.entity_id) for chunk in chunks):
                matches = await self._escalate_entity(index, plan.entity_id)
                if matches:
                    chunks = _prioritise(matches, chunks)
                    escalation = "entity"

        context_chunks = longest_chunk_per_file(chunks) if isinstance(plan, OverviewQuery) else list(chunks)
        result = RetrievalResult(
            plan=plan,
            chunks=list(chunks),
            context_chunks=context_chunks,
            context=build_context(context_chunks),
            escalation=escalation,
        )
        emit_retriever_event(
            session_id=session_id,
            query=question,
            query_type=plan.kind,
            top_k=plan.top_k,
            escalation=escalation,
            results=[
                {"file": chunk.file_name, "chunk_index": chunk.chunk_index} for chunk in result.chunks
            ],
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    async def _escalate_entity(self, index: SessionIndex, entity_id: str) -> List[DocumentChunk]:
        for query, needle in entity_variants(entity_id):
            expanded = await index.search(query, ENTITY_ESCALATION_TOP_K)
            matches = [chunk for chunk in expanded if chunk_mentions(chunk, needle)]
            if matches:
                LOGGER.info(
                    "Entity %s found in %d chunks using query variant %r", entity_id, len(matches), query
                )
                return matches
        LOGGER.info("Entity %s not found after trying all query variants", entity_id)
        return []
