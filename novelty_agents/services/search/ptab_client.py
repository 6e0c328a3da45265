"""USPTO Open Data Portal client for PTAB trials and appeal decisions.

Only challenged patents show up here (IPR/PGR/CBM proceedings, board
decisions, ex parte appeals), which makes it a supplementary risk signal
next to PatentsView.
"""

from __future__ import annotations

from typing import Any

import structlog

from ...core.config import settings
from ...core.exceptions import SearchNotConfiguredError
from .base import BaseSearchClient
from .patent_reference import PatentReference, get_patent_url

logger = structlog.get_logger(__name__)

ENDPOINTS = {
    "proceedings": "/api/v1/patent/trials/proceedings/search",
    "decisions": "/api/v1/patent/trials/decisions/search",
    "appeals": "/api/v1/patent/appeals/decisions/search",
}

RESULT_BAGS = (
    "patentTrialProceedingDataBag",
    "patentTrialDecisionDataBag",
    "patentAppealDecisionDataBag",
    "results",
)


def proceeding_to_reference(proc: dict[str, Any]) -> PatentReference:
    owner = proc.get("patentOwnerData") or {}
    meta = proc.get("trialMetaData") or {}
    petitioner_data = proc.get("regularPetitionerData") or {}

    number = owner.get("patentNumber") or proc.get("patentNumber") or ""
    trial_type = meta.get("trialTypeCode") or proc.get("trialTypeCode") or "IPR"
    petitioner = (
        petitioner_data.get("realPartyInInterestName") or proc.get("petitionerPartyName") or "Unknown"
    )
    return PatentReference(
        patent_number=number,
        # Proceedings carry no title; the inventor name is the closest label
        title=owner.get("inventorName") or proc.get("patentOwnerPartyName") or "Unknown",
        filing_date=(
            meta.get("petitionFilingDate")
            or proc.get("accordedFilingDate")
            or proc.get("filingDate")
            or ""
        ),
        status=meta.get("trialStatusCategory") or proc.get("prosecutionStatus") or "Unknown",
        source="USPTO_PTAB",
        trial_type=trial_type,
        url=get_patent_url(number),
        relevance_context=(
            f"{trial_type} proceeding ({proc.get('trialNumber', '')}): {petitioner} vs Patent Owner"
        ),
    )


def decision_to_reference(dec: dict[str, Any]) -> PatentReference:
    number = dec.get("patentNumber") or ""
    return PatentReference(
        patent_number=number,
        title=dec.get("patentTitle") or dec.get("documentName") or "Title not available",
        filing_date=dec.get("decisionDate") or "",
        status=dec.get("decisionOutcome") or dec.get("decisionTypeCode") or "Decision rendered",
        source="USPTO_PTAB",
        url=get_patent_url(number),
        relevance_context=f"PTAB Decision: {dec.get('documentName', '')}",
    )


def appeal_to_reference(appeal: dict[str, Any]) -> PatentReference:
    number = appeal.get("patentNumber") or appeal.get("applicationNumber") or ""
    center = appeal.get("technologyCenter")
    return PatentReference(
        patent_number=number,
        title=appeal.get("documentTitle") or "Title not available",
        filing_date=appeal.get("decisionDate") or "",
        status=appeal.get("outcome") or "Appeal decided",
        source="USPTO_APPEALS",
        url=get_patent_url(number),
        relevance_context=(
            f"Ex Parte Appeal - Technology Center: {center}" if center else "Ex Parte Appeal Decision"
        ),
    )


_CONVERTERS = {
    "proceedings": proceeding_to_reference,
    "decisions": decision_to_reference,
    "appeals": appeal_to_reference,
}

_DEFAULT_SORT = {
    "proceedings": "accordedFilingDate desc",
    "decisions": "decisionDate desc",
    "appeals": "decisionDate desc",
}


class PTABClient(BaseSearchClient):
    """Search PTAB proceedings, decisions and appeals with a Lucene query."""

    BASE_URL = "https://api.uspto.gov"
    PROVIDER = "USPTO"
    AUTH_HINT = "API key requires ID.me verification. See: https://data.uspto.gov/apis/getting-started"
    MIN_INTERVAL = 1.0  # 60 req/min

    def __init__(self, api_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "PTABClient":
        return cls(api_key=settings.USPTO_API_KEY, **kwargs)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self, endpoint: str, query: str, *, limit: int = 20, offset: int = 0
    ) -> list[PatentReference]:
        """Search one PTAB endpoint ("proceedings", "decisions" or "appeals").

        Raises:
            SearchNotConfiguredError: If no API key is set
            SearchClientError: On any non-2xx response
        """
        if not self.api_key:
            raise SearchNotConfiguredError(self.PROVIDER, "USPTO_API_KEY not configured")

        response = await self._send(
            "GET",
            f"{self.BASE_URL}{ENDPOINTS[endpoint]}",
            params={"q": query, "offset": offset, "limit": limit, "sort": _DEFAULT_SORT[endpoint]},
            headers={"X-API-KEY": self.api_key, "Accept": "application/json"},
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        data = response.json()
        items: list[dict[str, Any]] = next(
            (data[bag] for bag in RESULT_BAGS if data.get(bag)), []
        )
        references = [_CONVERTERS[endpoint](item) for item in items]
        logger.info("ptab_search_completed", endpoint=endpoint, results=len(references))
        return references


__all__ = [
    "ENDPOINTS",
    "PTABClient",
    "appeal_to_reference",
    "decision_to_reference",
    "proceeding_to_reference",
]
