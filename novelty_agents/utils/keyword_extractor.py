"""Keyword and search-query extraction for invention descriptions.

Pure, deterministic helpers: identical inputs always produce identical
queries, which keeps result-cache keys stable across runs.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

MAX_KEYWORDS = 5
MAX_QUERIES = 5

# Generic invention jargon is dropped so queries skew toward distinguishing terms
STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "can", "this", "that", "these",
        "those", "i", "you", "he", "she", "it", "we", "they", "what", "which",
        "who", "when", "where", "why", "how", "all", "each", "every", "both",
        "few", "more", "most", "other", "some", "such", "no", "nor", "not",
        "only", "own", "same", "so", "than", "too", "very", "just", "and",
        "but", "if", "or", "because", "as", "until", "while", "of", "at",
        "by", "for", "with", "about", "against", "between", "into", "through",
        "during", "before", "after", "above", "below", "to", "from", "up",
        "down", "in", "out", "on", "off", "over", "under", "again", "further",
        "then", "once", "here", "there", "any", "our", "your", "their", "its",
        "my", "his", "her", "device", "system", "apparatus", "method",
        "invention", "product", "innovative", "new", "novel", "smart",
        "intelligent", "advanced", "automatic", "automated", "using", "uses",
    }
)

PATENT_STOP_WORDS: frozenset[str] = STOP_WORDS | frozenset(
    {
        "us", "them", "me", "him", "hers", "having", "doing", "shall", "now",
        "solution", "user", "users", "use", "used", "provide", "provides",
        "provided", "include", "includes", "included", "including", "also",
    }
)


def _tokenize(text: str, pattern: str = r"[^a-z0-9\s]") -> list[str]:
    return re.sub(pattern, " ", text.lower()).split()


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> str:
    """Extract the first distinguishing terms of a text.

    Args:
        text: Free text (name, problem statement, feature, description)
        limit: Max number of unique terms kept (default 5)

    Returns:
        Space-joined keywords, empty string when nothing survives filtering

    Example:
        >>> extract_keywords("A smart, leak-proof water bottle for hikers")
        "leak proof water bottle hikers"
    """
    if not text:
        return ""

    unique: list[str] = []
    for word in _tokenize(text):
        if len(word) <= 2 or word in STOP_WORDS or word in unique:
            continue
        unique.append(word)
        if len(unique) == limit:
            break
    return " ".join(unique)


def generate_search_queries(
    invention_name: str,
    description: str,
    problem_statement: str | None = None,
    key_features: Sequence[str] | None = None,
) -> list[str]:
    """Build up to five web search queries for an invention.

    One query per field: core name terms, problem terms + "solution", up to
    three feature queries, and description terms + "product" when fewer than
    three queries exist so far. Duplicates are removed in order.

    Args:
        invention_name: Invention name
        description: Invention description
        problem_statement: Optional problem the invention solves
        key_features: Optional ordered feature list

    Returns:
        Deduplicated query list (at most 5 entries)
    """
    queries: list[str] = []

    core_terms = extract_keywords(invention_name)
    if core_terms:
        queries.append(core_terms)

    if problem_statement:
        problem_terms = extract_keywords(problem_statement)
        if problem_terms:
            queries.append(f"{problem_terms} solution")

    for feature in list(key_features or [])[:3]:
        feature_terms = extract_keywords(feature)
        if len(feature_terms) > 3:
            queries.append(feature_terms)

    if len(queries) < 3:
        description_terms = extract_keywords(description)
        if description_terms:
            queries.append(f"{description_terms} product")

    return list(dict.fromkeys(queries))[:MAX_QUERIES]


def extract_patent_keywords(
    invention_name: str,
    description: str,
    key_features: Sequence[str] | None = None,
    limit: int = 10,
) -> list[str]:
    """Rank patent search terms by frequency across all invention text.

    Short phrases from the invention name (comma or semicolon separated, up
    to four words) come first, followed by the ``limit`` most frequent words.
    Ties keep first-occurrence order.

    Example:
        >>> extract_patent_keywords("Solar charger", "Foldable solar panel charger")
        ["solar charger", "solar", "charger", "foldable", "panel"]
    """
    all_text = " ".join([invention_name, description, *(key_features or [])])
    words = [
        w
        for w in _tokenize(all_text, pattern=r"[^a-z0-9\s-]")
        if len(w) > 2 and w not in PATENT_STOP_WORDS and not w.isdigit()
    ]
    ranked = [word for word, _ in Counter(words).most_common(limit)]

    name_phrases = [
        phrase.strip()
        for phrase in re.split(r"[,;]", invention_name.lower())
        if len(phrase.strip()) > 3 and len(phrase.split()) <= 4
    ]
    return list(dict.fromkeys([*name_phrases, *ranked]))


__all__ = [
    "STOP_WORDS",
    "extract_keywords",
    "extract_patent_keywords",
    "generate_search_queries",
]
