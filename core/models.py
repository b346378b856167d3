"""
Core data models for the listing monitor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_INTERVAL_MINUTES = 5

TargetKind = Literal["store", "search"]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Webhook(BaseModel):
    """A Discord webhook destination."""
    id: Optional[str] = None
    name: str
    url: str
    default: bool = False


class MonitoredTarget(BaseModel):
    """A store or saved search from the configuration document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: TargetKind
    name: str
    id: Optional[str] = None
    url: Optional[str] = None
    store_id: Optional[str] = Field(default=None, alias="storeId")
    search_term: Optional[str] = Field(default=None, alias="searchTerm")
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    min_price: Optional[float] = Field(default=None, alias="minPrice")
    max_price: Optional[float] = Field(default=None, alias="maxPrice")
    filters: List[str] = Field(default_factory=list)
    enabled: bool = False
    interval: int = DEFAULT_INTERVAL_MINUTES
    webhook: Optional[str] = None
    webhook_id: Optional[str] = Field(default=None, alias="webhookId")

    @field_validator("interval", mode="before")
    @classmethod
    def _default_interval(cls, value):
        # The config editor writes 0 / null when the prompt was left empty
        if value is None or value == 0 or value == "":
            return DEFAULT_INTERVAL_MINUTES
        return value

    @field_validator("interval")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("interval must be a positive number of minutes")
        return value

    @field_validator("category_id", "store_id", "id", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else None

    @property
    def identifier(self) -> str:
        """Stable identifier used to namespace the seen-item cache."""
        return self.name or self.id or self.store_id or self.url or ""

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.identifier}"


class MonitorConfig(BaseModel):
    """The configuration document: ``{webhooks, stores, searches}``."""
    webhooks: List[Webhook] = Field(default_factory=list)
    stores: List[MonitoredTarget] = Field(default_factory=list)
    searches: List[MonitoredTarget] = Field(default_factory=list)

    @property
    def targets(self) -> List[MonitoredTarget]:
        return [*self.stores, *self.searches]

    def enabled_targets(self) -> List[MonitoredTarget]:
        return [t for t in self.targets if t.enabled]


class RawItem(BaseModel):
    """One listing as extracted from a source."""
    id: str = ""
    title: str = ""
    price: str = ""
    url: str = ""
    image_url: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    shipping: Optional[str] = None
    listing_type: Optional[str] = None
    bids: Optional[str] = None
    time_left: Optional[str] = None
    end_date: Optional[str] = None
    specifics: Optional[str] = None


class SourcePage(BaseModel):
    """Result of one source fetch."""
    items: List[RawItem] = Field(default_factory=list)
    bytes_received: int = 0
    request_count: int = 1
    fetched_at: datetime = Field(default_factory=_utcnow)


class ScanRunContext(BaseModel):
    """Per-target run state; never persisted."""
    is_first_run: bool = True
    is_first_scan: bool = False
    notified_count: int = 0


class ScanReport(BaseModel):
    """Outcome of a single scan of one target."""
    target_key: str
    total_count: int = 0
    new_count: int = 0
    notified_count: int = 0
    suppressed_count: int = 0
    failed_count: int = 0


class UsageCounters(BaseModel):
    total_bytes: int = 0
    total_requests: int = 0
    total_items: int = 0

    def add(self, bytes_received: int, requests: int, items: int) -> None:
        self.total_bytes += bytes_received
        self.total_requests += requests
        self.total_items += items
