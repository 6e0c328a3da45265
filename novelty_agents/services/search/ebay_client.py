"""eBay Browse API client for the retail channel.

Authentication uses the OAuth2 client-credentials grant; the application
token is cached on the instance until shortly before it expires.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from ...core.config import settings
from ...core.exceptions import (
    SearchAuthenticationError,
    SearchClientError,
    SearchNotConfiguredError,
    SearchRateLimitError,
)
from ...core.retry import with_retry
from .base import BaseSearchClient, SearchBatch, as_search_error

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "eBay API not configured. To enable retail product search, add EBAY_CLIENT_ID and "
    "EBAY_CLIENT_SECRET environment variables. Visit https://developer.ebay.com/my/keys "
    "to get API keys."
)


class EbayProduct(BaseModel):
    """Normalized eBay item summary."""

    item_id: str
    title: str
    url: str | None = None
    price: str | None = Field(default=None, description="'<currency> <value>'")
    condition: str | None = None
    image_url: str | None = None
    seller_username: str | None = None
    seller_feedback: str | None = None
    categories: list[str] = Field(default_factory=list)
    location: str | None = None


class EbayClient(BaseSearchClient):
    """Async client for eBay item summary search.

    Args:
        client_id: eBay application client id
        client_secret: eBay application client secret
        marketplace_id: Marketplace header value (default EBAY_US)
        **kwargs: http_client, timeout, rate_limiter, retry_policy, cache

    Example:
        >>> client = EbayClient(client_id="...", client_secret="...")
        >>> batch = await client.search_similar_products(["foldable solar charger"], limit=10)
    """

    TOKEN_URL = "https://api.ebay.com/identity/v1/oauth2/token"
    SEARCH_URL = "https://api.ebay.com/buy/browse/v1/item_summary/search"
    OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"
    PROVIDER = "eBay"
    AUTH_HINT = "Check EBAY_CLIENT_ID and EBAY_CLIENT_SECRET."
    MIN_INTERVAL = 0.2
    TOKEN_REFRESH_MARGIN = 60.0  # Seconds

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        marketplace_id: str = "EBAY_US",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.marketplace_id = marketplace_id
        self._token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "EbayClient":
        return cls(
            client_id=settings.EBAY_CLIENT_ID,
            client_secret=settings.EBAY_CLIENT_SECRET,
            marketplace_id=settings.EBAY_MARKETPLACE_ID,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if not self.is_configured:
            raise SearchNotConfiguredError(self.PROVIDER, NOT_CONFIGURED_MESSAGE)

        response = await self._send(
            "POST",
            self.TOKEN_URL,
            data={"grant_type": "client_credentials", "scope": self.OAUTH_SCOPE},
            auth=httpx.BasicAuth(self.client_id or "", self.client_secret or ""),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        payload = response.json()
        self._token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 7200))
        self._token_expires_at = time.monotonic() + max(expires_in - self.TOKEN_REFRESH_MARGIN, 0)
        logger.info("ebay_token_refreshed", expires_in=expires_in)
        return self._token

    async def search(self, query: str, *, limit: int = 10) -> list[EbayProduct]:
        """Search item summaries for one query.

        Raises:
            SearchNotConfiguredError: If credentials are missing
            SearchClientError: On any non-2xx response
        """
        token = await self._get_access_token()
        response = await self._send(
            "GET",
            self.SEARCH_URL,
            params={"q": query, "limit": min(limit, 50)},
            headers={
                "Authorization": f"Bearer {token}",
                "X-EBAY-C-MARKETPLACE-ID": self.marketplace_id,
            },
            timeout=self.timeout,
        )
        if response.status_code == 401:
            # Token revoked or expired early; next call fetches a new one
            self._token = None
        self._raise_for_status(response)

        products = [self._parse_item(item) for item in response.json().get("itemSummaries") or []]
        logger.info("ebay_search_completed", query=query[:50], results=len(products))
        return products

    @staticmethod
    def _parse_item(item: dict[str, Any]) -> EbayProduct:
        price = item.get("price") or {}
        seller = item.get("seller") or {}
        location = item.get("itemLocation") or {}
        location_parts = [
            location.get("city"),
            location.get("stateOrProvince"),
            location.get("country"),
        ]
        feedback = seller.get("feedbackPercentage")
        return EbayProduct(
            item_id=str(item.get("itemId", "")),
            title=item.get("title") or "Untitled listing",
            url=item.get("itemWebUrl"),
            price=(
                f"{price.get('currency', 'USD')} {price['value']}"
                if price.get("value") is not None
                else None
            ),
            condition=item.get("condition"),
            image_url=(item.get("image") or {}).get("imageUrl"),
            seller_username=seller.get("username"),
            seller_feedback=f"{feedback}%" if feedback else None,
            categories=[
                c["categoryName"] for c in item.get("categories") or [] if c.get("categoryName")
            ],
            location=", ".join(p for p in location_parts if p) or None,
        )

    async def search_similar_products(
        self, queries: Sequence[str], limit: int = 10
    ) -> SearchBatch[EbayProduct]:
        """Search each query (max two, to preserve quota) and merge by item id."""
        query_list = [q for q in queries if q][:2]
        params = {"queries": query_list, "limit": limit}
        return await self._cached_batch(
            "retail",
            params,
            EbayProduct,
            lambda: self._search_all(query_list, limit),
        )

    async def _search_all(self, queries: list[str], limit: int) -> SearchBatch[EbayProduct]:
        if not self.is_configured:
            return SearchBatch(
                queries=queries,
                error=SearchNotConfiguredError(self.PROVIDER, NOT_CONFIGURED_MESSAGE),
            )

        seen: set[str] = set()
        products: list[EbayProduct] = []
        last_error: SearchClientError | None = None

        for query in queries:
            outcome = await with_retry(
                self.search,
                query,
                limit=limit,
                policy=self.retry_policy,
                operation="ebay_search",
            )
            if not outcome.success:
                last_error = as_search_error(self.PROVIDER, outcome.last_error)
                if isinstance(last_error, (SearchAuthenticationError, SearchRateLimitError)):
                    break
                continue

            for product in outcome.data or []:
                if product.item_id not in seen:
                    seen.add(product.item_id)
                    products.append(product)

        return SearchBatch(queries=queries, results=products, error=last_error)


__all__ = ["NOT_CONFIGURED_MESSAGE", "EbayClient", "EbayProduct"]
