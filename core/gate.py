"""
Notification gate: bound how many new items a single scan may dispatch.

A target scanned for the first time (empty seen-item cache) typically shows
a full page of "new" listings; only the first ``cap`` of them are sent and
the rest are dropped for good.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .models import RawItem

logger = logging.getLogger(__name__)

MAX_INITIAL_NOTIFICATIONS = 2


class GateDecision(BaseModel):
    dispatch: List[RawItem] = Field(default_factory=list)
    suppressed: List[RawItem] = Field(default_factory=list)


class NotificationGate:
    """Selects which new items of a scan are passed to the notifier."""

    def __init__(self, cap: int = MAX_INITIAL_NOTIFICATIONS):
        if cap < 0:
            raise ValueError("cap must not be negative")
        self.cap = cap

    def select(
        self,
        new_items: Sequence[RawItem],
        first_scan: bool,
        label: Optional[str] = None,
    ) -> GateDecision:
        if not first_scan:
            return GateDecision(dispatch=list(new_items))

        decision = GateDecision(
            dispatch=list(new_items[: self.cap]),
            suppressed=list(new_items[self.cap :]),
        )
        if decision.suppressed:
            logger.info(
                f"{label or 'target'}: first scan, {len(decision.suppressed)} additional "
                f"new items found but not notified to prevent spam"
            )
        return decision
