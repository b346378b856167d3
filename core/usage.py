"""
Usage statistics: bytes, requests and items per day, per month and in total.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import PersistenceError
from .infra.json_store import load_json, write_json
from .models import UsageCounters

logger = logging.getLogger(__name__)


class UsageDocument(BaseModel):
    daily_stats: Dict[str, UsageCounters] = Field(default_factory=dict)
    monthly_stats: Dict[str, UsageCounters] = Field(default_factory=dict)
    total_stats: UsageCounters = Field(default_factory=UsageCounters)


class UsageRecorder:
    """Accumulates scan volume into a JSON document."""

    def __init__(self, path: Union[str, Path] = "data/usage-stats.json"):
        self.path = Path(path)
        self.stats = self._load()

    def _load(self) -> UsageDocument:
        data = load_json(self.path, dict)
        try:
            return UsageDocument.model_validate(data)
        except ValidationError as e:
            logger.error(f"Error loading stats from {self.path}: {e}")
            return UsageDocument()

    def save(self) -> None:
        try:
            write_json(self.path, self.stats.model_dump())
        except PersistenceError as e:
            logger.error(f"Error saving stats: {e}")

    def record_scan(self, bytes_received: int, requests: int, items: int, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(tz=timezone.utc)
        date_str = now.strftime("%Y-%m-%d")
        month_str = now.strftime("%Y-%m")

        self.stats.daily_stats.setdefault(date_str, UsageCounters()).add(bytes_received, requests, items)
        self.stats.monthly_stats.setdefault(month_str, UsageCounters()).add(bytes_received, requests, items)
        self.stats.total_stats.add(bytes_received, requests, items)
        self.save()

    def get_daily_stats(self, date: str) -> UsageCounters:
        return self.stats.daily_stats.get(date, UsageCounters())

    def get_monthly_stats(self, month: str) -> UsageCounters:
        return self.stats.monthly_stats.get(month, UsageCounters())

    def get_total_stats(self) -> UsageCounters:
        return self.stats.total_stats

    def clear_old_stats(self, days_to_keep: int = 30, now: Optional[datetime] = None) -> int:
        """Drop daily buckets older than ``days_to_keep``; monthly and total stay."""
        now = now or datetime.now(tz=timezone.utc)
        cutoff = (now - timedelta(days=days_to_keep)).strftime("%Y-%m-%d")
        old = [date for date in self.stats.daily_stats if date < cutoff]
        for date in old:
            del self.stats.daily_stats[date]
        self.save()
        return len(old)
