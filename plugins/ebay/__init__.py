"""eBay plugin package – listing sources for stores and saved searches.

* :class:`EbayScrapeSource` – parses the public search-result HTML
* :class:`EbayApiSource`    – queries the Browse API with an application token

:func:`build_source` picks the API when credentials are configured and
falls back to scraping otherwise.
"""

from core.config import Settings
from core.interfaces import ListingSource

from .api import EbayApiSource        # noqa: F401
from .scraper import EbayScrapeSource  # noqa: F401


def build_source(settings: Settings) -> ListingSource:
    if settings.has_api_credentials:
        return EbayApiSource(
            app_id=settings.ebay_app_id,
            cert_id=settings.ebay_cert_id,
            sandbox=settings.ebay_sandbox,
            marketplace=settings.ebay_marketplace,
        )
    return EbayScrapeSource(domain=settings.ebay_domain)
