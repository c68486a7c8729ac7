"""Prompt construction for document question answering."""
from __future__ import annotations

from drivechat.retrieval.classification import OverviewQuery, QueryPlan, SpecificQuery

_SYSTEM_TEXT = "You are an intelligent assistant helping with elevator maintenance documentation."

_OVERVIEW_INTRO = (
    "The user is asking for an overview of multiple documents. Provide a comprehensive summary."
)
_SPECIFIC_INTRO = "Based on the provided documents, answer the user's question accurately and helpfully."

_OVERVIEW_INSTRUCTIONS = """\
- Provide a comprehensive overview of ALL the documents provided
- Group information logically (by document type, location, elevator IDs, etc.)
- Include key details like elevator IDs, locations, dates, and types of work
- If asking for "all documents", mention that you're showing information from the available sample
- List each unique document and its main purpose/content
- Be organized and systematic in your presentation
- Note any patterns or trends across the documents"""

_SPECIFIC_INSTRUCTIONS = """\
- Only use information from the provided documents
- If the information isn't in the documents, say so clearly
- Be specific and cite which document(s) you're referencing
- For elevator IDs or specific maintenance records, provide exact details
- Be helpful and professional"""

_ADDRESS_RULE = """\
ADDRESS EXTRACTION:
For questions involving invoices or elevator information, extract complete address details by scanning for:
- "Adresse der Anlage", "Objektadresse", "Anschrift"
- Street names, house numbers, postal codes (PLZ), city names
- Combine all address components found anywhere in the document"""


def _focus_notes(plan: QueryPlan) -> list[str]:
    if not isinstance(plan, SpecificQuery):
        return []
    notes: list[str] = []
    if plan.file_token:
        notes.append(
            f'The user is asking specifically about "{plan.file_token}". Focus on information from this '
            "document while providing relevant context from related documents."
        )
    if plan.entity_id:
        notes.append(
            f'The user is asking specifically about elevator ID/number "{plan.entity_id}". Search thoroughly '
            "through all provided documents for any information about this elevator, including maintenance "
            "records, malfunctions, inspections, invoices and related work."
        )
    return notes


def build_prompt(plan: QueryPlan, question: str, context: str) -> str:
    """Compose the prompt sent to the chat provider."""

    if question is None:
        raise ValueError("question must not be None")

    overview = isinstance(plan, OverviewQuery)
    sections = [_SYSTEM_TEXT, _OVERVIEW_INTRO if overview else _SPECIFIC_INTRO]
    sections.extend(_focus_notes(plan))
    sections.append(_ADDRESS_RULE)
    sections.append(f"CONTEXT FROM DOCUMENTS:\n{context}")
    sections.append(f"USER QUESTION: {question.strip()}")
    sections.append(
        "INSTRUCTIONS:\n" + (_OVERVIEW_INSTRUCTIONS if overview else _SPECIFIC_INSTRUCTIONS)
    )
    sections.append("ANSWER:")
    return "\n\n".join(sections)


__all__ = ["build_prompt"]
