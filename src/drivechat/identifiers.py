"""Heuristics for spotting structured numeric identifiers in free text.

A bare 6-12 digit run is treated as an identifier (equipment or serial
number). This is approximate: dates written without separators, phone numbers
and amounts match as well.
"""
from __future__ import annotations

import re

IDENTIFIER_RE = re.compile(r"(?<!\d)\d{6,12}(?!\d)")


def find_identifiers(text: str) -> tuple[str, ...]:
    """Return the distinct identifier tokens of *text* in order of appearance."""

    seen: dict[str, None] = {}
    for match in IDENTIFIER_RE.finditer(text):
        seen.setdefault(match.group(0), None)
    return tuple(seen)
