"""Pure classification of chat questions into retrieval plans."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

OVERVIEW_TOP_K = 20
ENTITY_TOP_K = 10
SPECIFIC_TOP_K = 4

OVERVIEW_RE = re.compile(
    r"\b(overview|all documents?|list all|show all|summary of all|all files?|comprehensive|complete list)\b",
    re.IGNORECASE,
)
FILE_RE = re.compile(
    r"\b(?:Rechnung|Invoice|Document|File|Datei|Dokument)[\s\-_]*(\w+(?:\.\w+)?)",
    re.IGNORECASE,
)
# Any 6-12 digit run counts, with or without a keyword in front of it, so
# dates and phone numbers are picked up too.
ENTITY_RE = re.compile(
    r"(?:\b(?:Aufzug|Anlage|Fabriknummer|elevator|lift|unit|ID|Nr)\.?[\s:#\-]*)?(?<!\d)(\d{6,12})(?!\d)",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class OverviewQuery:
    """Question asking about the whole document collection."""

    question: str

    @property
    def kind(self) -> str:
        return "overview"

    @property
    def top_k(self) -> int:
        return OVERVIEW_TOP_K


@dataclass(frozen=True, slots=True)
class SpecificQuery:
    """Focused question, optionally naming a file or an entity identifier."""

    question: str
    file_token: Optional[str] = None
    entity_id: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.entity_id:
            return "entity"
        if self.file_token:
            return "file"
        return "specific"

    @property
    def top_k(self) -> int:
        return ENTITY_TOP_K if self.entity_id else SPECIFIC_TOP_K


QueryPlan = Union[OverviewQuery, SpecificQuery]


def classify_query(question: str) -> QueryPlan:
    """Map *question* to the plan used for retrieval.

    Overview wording wins over everything else; otherwise the first file
    reference and the first numeric identifier are extracted independently.
    """

    if OVERVIEW_RE.search(question):
        return OverviewQuery(question)

    file_match = FILE_RE.search(question)
    entity_match = ENTITY_RE.search(question)
    return SpecificQuery(
        question,
        file_token=file_match.group(1) if file_match else None,
        entity_id=entity_match.group(1) if entity_match else None,
    )
