"""
eBay scrape source – fetches search-result HTML and extracts listings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

import aiohttp

from core.errors import SourceFetchError, SourceShapeDrift
from core.infra.http import BROWSER_HEADERS, HttpClient
from core.interfaces import ListingSource
from core.models import MonitoredTarget, SourcePage

from .parser import parse_listings

logger = logging.getLogger(__name__)

__all__ = ["EbayScrapeSource", "seller_name", "store_url", "search_url"]


def seller_name(target: MonitoredTarget) -> Optional[str]:
    """Seller username of a store target, from its id or its URL."""
    for candidate in (target.store_id, target.id):
        if candidate and not candidate.startswith("http"):
            return candidate

    url = target.url or (target.id if target.id and target.id.startswith("http") else None)
    if not url:
        return None
    parsed = urlparse(url)
    if "/str/" in parsed.path:
        name = parsed.path.split("/str/", 1)[1].split("/")[0]
        return name or None
    ssn = parse_qs(parsed.query).get("_ssn")
    if ssn:
        return ssn[0]
    tail = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    return tail or None


def store_url(domain: str, seller: str) -> str:
    """Newest-first listing page of a seller."""
    query = urlencode({
        "_nkw": "",
        "_sacat": "0",
        "_sop": "10",
        "_dmd": "2",
        "_ipg": "200",
        "_ssn": seller,
    })
    return f"https://{domain}/sch/i.html?{query}"


def search_url(domain: str, target: MonitoredTarget) -> Optional[str]:
    """URL of a saved search: the configured URL, else one built from its fields."""
    if target.url:
        return target.url
    if not target.search_term:
        return None
    params = {
        "_nkw": target.search_term,
        "_sacat": target.category_id or "0",
        "_sop": "10",
        "rt": "nc",
    }
    if target.min_price is not None:
        params["_udlo"] = f"{target.min_price:g}"
    if target.max_price is not None:
        params["_udhi"] = f"{target.max_price:g}"
    return f"https://{domain}/sch/i.html?{urlencode(params)}"


class EbayScrapeSource(ListingSource):
    """Reads listings from eBay's public search-result pages."""

    name = "EbayScrapeSource"

    def __init__(self, *, domain: str = "www.ebay.ca", http: Optional[HttpClient] = None) -> None:
        self._domain = domain
        self._http = http or HttpClient(
            max_retries=3,
            base_delay=5.0,
            default_headers={**BROWSER_HEADERS, "Referer": f"https://{domain}/"},
        )

    async def close(self) -> None:
        await self._http.close()

    def url_for(self, target: MonitoredTarget) -> str:
        if target.kind == "store":
            seller = seller_name(target)
            if not seller:
                raise SourceFetchError(f"Could not determine store name for {target.key}")
            return store_url(self._domain, seller)

        url = search_url(self._domain, target)
        if not url:
            raise SourceFetchError(f"Search {target.key} has neither a URL nor a search term")
        return url

    async def fetch(self, target: MonitoredTarget) -> SourcePage:
        url = self.url_for(target)
        logger.info(f"Fetching {target.kind} items from: {url}")

        try:
            body = await self._http.get_bytes(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceFetchError(f"Request for {target.key} failed: {e}") from e

        html = body.decode("utf-8", errors="replace")
        try:
            items = parse_listings(html)
        except SourceShapeDrift as e:
            raise SourceShapeDrift(
                f"{target.key}: {e}", bytes_received=len(body), request_count=1
            ) from e

        return SourcePage(items=items, bytes_received=len(body), request_count=1)
