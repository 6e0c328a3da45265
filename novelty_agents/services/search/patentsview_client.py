"""PatentsView PatentSearch API client (all granted US patents).

Authentication: X-Api-Key header. Rate limit: 45 requests/minute.
Docs: https://search.patentsview.org/docs/
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from ...core.config import settings
from ...core.exceptions import SearchNotConfiguredError
from .base import BaseSearchClient
from .patent_reference import PatentReference, get_patent_url

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "PATENTSVIEW_API_KEY not configured. Request at https://patentsview.org/apis/keyrequest"
)

PATENT_FIELDS = [
    "patent_id",
    "patent_title",
    "patent_abstract",
    "patent_date",
    "patent_type",
    "patent_kind",
    "assignees",
]


class PatentsViewClient(BaseSearchClient):
    """Full-text search over titles and abstracts of granted patents."""

    API_URL = "https://search.patentsview.org/api/v1/patent/"
    PROVIDER = "PatentsView"
    AUTH_HINT = "Check PATENTSVIEW_API_KEY."
    MIN_INTERVAL = 1.334  # 45 req/min

    def __init__(self, api_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "PatentsViewClient":
        return cls(api_key=settings.PATENTSVIEW_API_KEY, **kwargs)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search_patents(
        self, search_terms: Sequence[str], *, limit: int = 25
    ) -> list[PatentReference]:
        """Match any of the terms in title or abstract, most recent first.

        Raises:
            SearchNotConfiguredError: If no API key is set
            SearchClientError: On any non-2xx response
        """
        if not self.api_key:
            raise SearchNotConfiguredError(self.PROVIDER, NOT_CONFIGURED_MESSAGE)

        search_text = " ".join(search_terms)
        body = {
            "q": {
                "_or": [
                    {"_text_any": {"patent_title": search_text}},
                    {"_text_any": {"patent_abstract": search_text}},
                ]
            },
            "f": PATENT_FIELDS,
            "o": {"size": limit},
            "s": [{"patent_date": "desc"}],
        }
        response = await self._send(
            "POST",
            self.API_URL,
            json=body,
            headers={"X-Api-Key": self.api_key},
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        patents = [self._to_reference(p) for p in response.json().get("patents") or []]
        logger.info("patentsview_search_completed", query=search_text[:50], results=len(patents))
        return patents

    @staticmethod
    def _to_reference(patent: dict[str, Any]) -> PatentReference:
        assignees = patent.get("assignees") or [{}]
        first = assignees[0] or {}
        assignee = first.get("assignee_organization")
        if not assignee and first.get("assignee_individual_name_first"):
            assignee = (
                f"{first['assignee_individual_name_first']} "
                f"{first.get('assignee_individual_name_last') or ''}"
            ).strip()

        number = str(patent.get("patent_id", ""))
        return PatentReference(
            patent_number=number,
            title=patent.get("patent_title") or "Title not available",
            filing_date=patent.get("patent_date") or "",
            status=patent.get("patent_type") or "Granted",
            source="USPTO_PATENTSVIEW",
            url=get_patent_url(number),
            abstract=patent.get("patent_abstract"),
            assignee=assignee,
            relevance_context=(
                f"Granted patent - Assignee: {assignee}" if assignee else "Granted patent from USPTO"
            ),
        )


__all__ = ["NOT_CONFIGURED_MESSAGE", "PatentsViewClient"]
