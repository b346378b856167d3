"""
eBay Browse API source.

Authenticates with the client-credentials grant, caches the application
token until shortly before it expires, and maps ``itemSummaries`` to
:class:`~core.models.RawItem`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import aiohttp

from core.errors import SourceFetchError, SourceShapeDrift
from core.infra.http import HttpClient
from core.interfaces import ListingSource
from core.models import MonitoredTarget, RawItem, SourcePage

from .scraper import seller_name

logger = logging.getLogger(__name__)

__all__ = ["EbayApiSource", "item_from_summary"]

_PROD = "https://api.ebay.com"
_SANDBOX = "https://api.sandbox.ebay.com"
SCOPE = "https://api.ebay.com/oauth/api_scope"
PAGE_LIMIT = 200
TOKEN_SAFETY_MARGIN_S = 60

_CATEGORY_RE = re.compile(r"^\d+$")


def _money(amount: Optional[Dict[str, Any]], default_currency: str) -> Optional[str]:
    if not amount or not amount.get("value"):
        return None
    return f"{amount['value']} {amount.get('currency') or default_currency}"


def item_from_summary(summary: Dict[str, Any], currency: str = "CAD") -> RawItem:
    """Map one Browse API ``itemSummary`` to a RawItem."""
    price = _money(summary.get("price"), currency)
    if price is None:
        bid = _money(summary.get("currentBidPrice"), currency)
        price = f"{bid} (Current Bid)" if bid else "N/A"

    shipping = None
    options = summary.get("shippingOptions") or []
    if options and options[0].get("shippingCost"):
        cost = options[0]["shippingCost"]
        shipping = "Free" if cost.get("value") == "0.00" else _money(cost, currency)

    buying = summary.get("buyingOptions") or []
    bid_count = summary.get("bidCount")

    return RawItem(
        id=str(summary.get("itemId") or ""),
        title=summary.get("title") or "",
        price=price,
        url=summary.get("itemWebUrl") or "",
        image_url=(summary.get("image") or {}).get("imageUrl"),
        condition=summary.get("condition"),
        location=(summary.get("itemLocation") or {}).get("country"),
        shipping=shipping,
        listing_type=buying[0] if buying else None,
        bids=str(bid_count) if bid_count is not None else None,
        end_date=summary.get("itemEndDate"),
    )


class EbayApiSource(ListingSource):
    """Reads listings through the Browse API ``item_summary/search`` call."""

    name = "EbayApiSource"

    def __init__(
        self,
        *,
        app_id: str,
        cert_id: str,
        sandbox: bool = False,
        marketplace: str = "EBAY_CA",
        delivery_country: str = "CA",
        currency: str = "CAD",
        http: Optional[HttpClient] = None,
    ) -> None:
        self._app_id = app_id
        self._cert_id = cert_id
        self._base = _SANDBOX if sandbox else _PROD
        self._marketplace = marketplace
        self._country = delivery_country
        self._currency = currency
        self._http = http or HttpClient(max_retries=3, base_delay=5.0)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    async def close(self) -> None:
        await self._http.close()

    # ------------------------------------------------------------------- #
    async def _get_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            payload = await self._http.post_json(
                f"{self._base}/identity/v1/oauth2/token",
                {"grant_type": "client_credentials", "scope": SCOPE},
                json=False,
                auth=aiohttp.BasicAuth(self._app_id, self._cert_id),
            )
            if not payload or "access_token" not in payload:
                raise SourceFetchError("eBay token response has no access_token")

            self._token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 7200))
            self._token_expires_at = time.monotonic() + max(0.0, expires_in - TOKEN_SAFETY_MARGIN_S)
            logger.info("Obtained eBay application token (expires in %.0fs)", expires_in)
            return self._token

    # ------------------------------------------------------------------- #
    def build_params(self, target: MonitoredTarget) -> Dict[str, Any]:
        filters: List[str] = [
            f"deliveryCountry:{self._country}",
            "buyingOptions:{FIXED_PRICE|AUCTION}",
        ]
        params: Dict[str, Any] = {"sort": "newlyListed", "limit": PAGE_LIMIT}

        if target.kind == "store":
            seller = seller_name(target)
            if not seller:
                raise SourceFetchError(f"Could not determine store name for {target.key}")
            filters.insert(0, "conditions:{NEW|USED}")
            filters.append(f"sellers:{{{seller}}}")
            filters.append(f"priceCurrency:{self._currency}")
            params["q"] = " "
        else:
            term = target.search_term or target.name
            params["q"] = term
            if target.min_price is not None and target.max_price is not None:
                filters.append(f"price:[{target.min_price:g}..{target.max_price:g}]")
            elif target.min_price is not None:
                filters.append(f"price:[{target.min_price:g}..]")
            elif target.max_price is not None:
                filters.append(f"price:[..{target.max_price:g}]")
            if target.min_price is not None or target.max_price is not None:
                filters.append(f"priceCurrency:{self._currency}")
            if target.category_id:
                if _CATEGORY_RE.match(target.category_id):
                    params["category_ids"] = target.category_id
                else:
                    logger.error(f"{target.key}: invalid category ID format: {target.category_id}")
            filters.extend(target.filters)

        params["filter"] = ",".join(filters)
        return params

    async def fetch(self, target: MonitoredTarget) -> SourcePage:
        params = self.build_params(target)
        logger.info(f"Making API request for {target.key}: filter={params['filter']}")

        try:
            token = await self._get_token()
            body = await self._http.get_bytes(
                f"{self._base}/buy/browse/v1/item_summary/search",
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "X-EBAY-C-MARKETPLACE-ID": self._marketplace,
                    "X-EBAY-C-ENDUSERCTX": f"contextualLocation=country={self._country}",
                },
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceFetchError(f"eBay API request for {target.key} failed: {e}") from e

        requests = 1
        try:
            data = json.loads(body)
        except ValueError as e:
            raise SourceFetchError(f"eBay API returned invalid JSON for {target.key}: {e}") from e
        if not isinstance(data, dict):
            raise SourceFetchError(
                f"eBay API returned a {type(data).__name__} instead of an object for {target.key}"
            )

        for warning in data.get("warnings") or []:
            logger.warning(f"{target.key}: API warning: {warning.get('message')}")

        summaries = data.get("itemSummaries")
        if summaries is None:
            if not data.get("total"):
                return SourcePage(items=[], bytes_received=len(body), request_count=requests)
            raise SourceShapeDrift(
                f"{target.key}: API response has total={data.get('total')} but no itemSummaries",
                bytes_received=len(body),
                request_count=requests,
            )

        items = [item_from_summary(s, self._currency) for s in summaries]
        return SourcePage(items=items, bytes_received=len(body), request_count=requests)
