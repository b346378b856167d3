"""
Parser for eBay search-result pages.

eBay has shipped several result-card layouts; each known layout is tried
in order and the first one that matches any card wins.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from core.errors import SourceShapeDrift
from core.models import RawItem

logger = logging.getLogger(__name__)

# CSS selectors per known result-card layout, newest last
LAYOUTS = [
    {
        "card": ".s-item",
        "title": ".s-item__title",
        "price": ".s-item__price",
        "link": "a.s-item__link",
        "image": ".s-item__image-img, .s-item__image img",
        "condition": ".SECONDARY_INFO",
        "location": ".s-item__location",
        "shipping": ".s-item__shipping, .s-item__logisticsCost",
        "bids": ".s-item__bids",
        "time_left": ".s-item__time-left",
        "purchase": ".s-item__purchase-options, .s-item__purchaseOptionsWithIcon",
        "details": ".s-item__details",
    },
    {
        "card": "li.s-card",
        "title": ".s-card__title",
        "price": ".s-card__price",
        "link": "a.su-link, a.s-card__link",
        "image": "img.s-card__image, img",
        "condition": ".s-card__subtitle",
        "location": ".s-card__location",
        "shipping": ".s-card__shipping",
        "bids": ".s-card__bids",
        "time_left": ".s-card__time-left",
        "purchase": ".s-card__purchase-options",
        "details": ".s-card__attribute-row",
    },
]

NO_RESULTS_SELECTORS = ".srp-save-null-search, .srp-controls__count-heading"
NO_RESULTS_RE = re.compile(r"No exact matches found|\b0 results\b", re.IGNORECASE)

# badges eBay prepends to titles; a bare "New" is left alone
_TITLE_PREFIXES = re.compile(r"^(New Listing|Shop on eBay)\b", re.IGNORECASE)
_ITEM_ID_RE = re.compile(r"/itm/(?:[^/?#]+/)?(\d+)")

PLACEHOLDER_TITLE = "Shop on eBay"


def clean_title(title: str) -> str:
    """Strip the badges eBay prepends to result titles."""
    return _TITLE_PREFIXES.sub("", title.strip(), count=1).strip()


def extract_item_id(url: Optional[str]) -> str:
    """Return the numeric listing id from an ``/itm/`` URL, or ``""``."""
    if not url:
        return ""
    match = _ITEM_ID_RE.search(url)
    return match.group(1) if match else ""


def _text(card: Tag, selector: str) -> str:
    node = card.select_one(selector)
    return node.get_text(" ", strip=True) if node else ""


def _listing_type(card: Tag, layout: dict) -> str:
    buy_it_now = "Buy It Now" in _text(card, layout["purchase"])
    auction = card.select_one(layout["bids"]) is not None
    if buy_it_now and auction:
        return "Auction with Buy It Now"
    if buy_it_now:
        return "Buy It Now"
    if auction:
        return "Auction"
    return "Unknown"


def _parse_card(card: Tag, layout: dict) -> Optional[RawItem]:
    title = _text(card, layout["title"])
    if title == PLACEHOLDER_TITLE:
        return None

    link = card.select_one(layout["link"])
    url = link.get("href") if link else None
    if not url:
        return None

    item_id = card.get("data-listing-id") or extract_item_id(url)
    if not item_id:
        return None

    image = card.select_one(layout["image"])
    image_url = None
    if image is not None:
        image_url = image.get("src") or image.get("data-src") or None

    specifics = [
        d.get_text(" ", strip=True) for d in card.select(layout["details"]) if d.get_text(strip=True)
    ]

    return RawItem(
        id=str(item_id),
        title=clean_title(title),
        price=_text(card, layout["price"]),
        url=url,
        image_url=image_url,
        condition=_text(card, layout["condition"]) or None,
        location=_text(card, layout["location"]) or None,
        shipping=_text(card, layout["shipping"]) or None,
        listing_type=_listing_type(card, layout),
        bids=_text(card, layout["bids"]) or None,
        time_left=_text(card, layout["time_left"]) or None,
        specifics=" | ".join(specifics) or None,
    )


def _looks_empty(soup: BeautifulSoup) -> bool:
    if soup.select_one(".srp-save-null-search") is not None:
        return True
    heading = soup.select_one(NO_RESULTS_SELECTORS)
    page_text = heading.get_text(" ", strip=True) if heading else soup.get_text(" ", strip=True)
    return bool(NO_RESULTS_RE.search(page_text))


def parse_listings(html: str) -> List[RawItem]:
    """Extract listings from a search-results page, in page order.

    A layout whose cards match but yield no item is skipped as well, so a
    renamed link or title selector is reported instead of looking empty.

    Raises:
        SourceShapeDrift: no known card layout produced an item and the page
            does not say it has no results.
    """
    soup = BeautifulSoup(html, "html.parser")
    matched_cards = 0

    for layout in LAYOUTS:
        cards = soup.select(layout["card"])
        if not cards:
            continue
        matched_cards += len(cards)

        items: List[RawItem] = []
        for card in cards:
            try:
                item = _parse_card(card, layout)
            except Exception as e:  # noqa: BLE001
                logger.debug(f"Error processing item card: {e}")
                continue
            if item is not None:
                items.append(item)
        logger.debug(f"Matched layout {layout['card']!r}: {len(cards)} cards, {len(items)} items")
        if items:
            return items

    if _looks_empty(soup):
        return []
    if matched_cards:
        raise SourceShapeDrift(f"{matched_cards} listing cards found but no item could be extracted")
    raise SourceShapeDrift("No listing cards matched any known layout")
