"""Normalized patent records and merge helpers shared by the patent sources."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Literal

from pydantic import BaseModel

PatentSource = Literal["USPTO_PATENTSVIEW", "USPTO_PTAB", "USPTO_APPEALS"]

_LUCENE_SPECIAL = re.compile(r'[+\-&|!(){}\[\]^"~*?:\\/]')


class PatentReference(BaseModel):
    """One patent from PatentsView or PTAB, before similarity scoring."""

    patent_number: str
    title: str
    filing_date: str = ""
    status: str = "Unknown"
    source: PatentSource
    url: str
    trial_type: str | None = None
    relevance_context: str | None = None
    abstract: str | None = None
    assignee: str | None = None
    is_challenged: bool = False


def normalize_patent_number(number: str) -> str:
    """Strip spaces and dashes, upper-case ("us 10-123" -> "US10123")."""
    return re.sub(r"[\s-]", "", number).upper()


def get_patent_url(patent_number: str) -> str:
    """Google Patents URL for a US patent number."""
    return f"https://patents.google.com/patent/US{normalize_patent_number(patent_number)}"


def escape_lucene(term: str) -> str:
    """Replace Lucene special characters with spaces and collapse whitespace."""
    return " ".join(_LUCENE_SPECIAL.sub(" ", term).split())


def sanitize_keywords(keywords: Iterable[str], limit: int = 5) -> list[str]:
    """Escape keywords and keep at most ``limit`` terms longer than two chars."""
    cleaned = [escape_lucene(k) for k in list(keywords)[:limit]]
    return [k for k in cleaned if len(k) > 2][:limit]


def build_ptab_query(keywords: Sequence[str]) -> str:
    """Build a PTAB Lucene title query, e.g. ``patentTitle:(solar OR charger)``.

    Kept deliberately flat: nested clauses and long term lists trigger
    server errors on the Open Data Portal.
    """
    terms = sanitize_keywords(keywords)
    if not terms:
        return "*:*"
    return f"patentTitle:({' OR '.join(terms)})"


def merge_patent_results(
    patentsview_results: Sequence[PatentReference],
    ptab_results: Sequence[PatentReference],
) -> list[PatentReference]:
    """Merge granted patents with challenged (PTAB) patents.

    PatentsView entries come first since they carry abstracts; any whose
    number also appears in PTAB is flagged challenged. PTAB-only entries are
    appended, all flagged challenged. Duplicates collapse on the normalized
    patent number.
    """
    challenged = {normalize_patent_number(p.patent_number) for p in ptab_results}
    seen: set[str] = set()
    merged: list[PatentReference] = []

    for patent in patentsview_results:
        key = normalize_patent_number(patent.patent_number)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(patent.model_copy(update={"is_challenged": key in challenged}))

    for patent in ptab_results:
        key = normalize_patent_number(patent.patent_number)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(patent.model_copy(update={"is_challenged": True}))

    return merged


__all__ = [
    "PatentReference",
    "build_ptab_query",
    "escape_lucene",
    "get_patent_url",
    "merge_patent_results",
    "normalize_patent_number",
    "sanitize_keywords",
]
