"""Question classification and session retrieval."""

from .classification import OverviewQuery, QueryPlan, SpecificQuery, classify_query
from .router import QueryRouter, RetrievalResult, build_context, citations

__all__ = [
    "OverviewQuery",
    "QueryPlan",
    "QueryRouter",
    "RetrievalResult",
    "SpecificQuery",
    "build_context",
    "citations",
    "classify_query",
]
