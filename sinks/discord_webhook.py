"""
Discord webhook notifier for new listings and scan alerts.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from discord import Colour, Embed

from core.errors import NotificationDeliveryError
from core.infra.http import HttpClient
from core.interfaces import Notifier
from core.models import MonitoredTarget, RawItem, Webhook


logger = logging.getLogger(__name__)

PACING_DELAY_S = 2.0
RATE_LIMIT_FALLBACK_S = 5.0

# Discord embed limits
_TITLE_LIMIT = 256
_FIELD_LIMIT = 1024


def _clip(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def build_item_embed(item: RawItem, target: MonitoredTarget) -> Embed:
    """Embed for one new listing."""
    embed = Embed(
        title=_clip(item.title or "(untitled)", _TITLE_LIMIT),
        url=item.url or None,
        colour=Colour(0x00FF00),
        timestamp=datetime.now(tz=timezone.utc),
    )
    embed.add_field(name="Price", value=item.price or "N/A", inline=True)

    optional_fields = [
        ("Condition", item.condition),
        ("Shipping", item.shipping),
        ("Location", item.location),
        ("Listing Type", item.listing_type),
        ("Bids", item.bids),
        ("Time Left", item.time_left),
        ("Ends", item.end_date),
    ]
    for name, value in optional_fields:
        if value:
            embed.add_field(name=name, value=_clip(value, _FIELD_LIMIT), inline=True)
    if item.specifics:
        embed.add_field(name="Details", value=_clip(item.specifics, _FIELD_LIMIT), inline=False)

    if item.image_url:
        embed.set_image(url=item.image_url)
    embed.set_footer(text=f'New item from {target.kind} "{target.name}"')
    return embed


def build_alert_embed(target: MonitoredTarget, message: str) -> Embed:
    """Embed for an operational alert, e.g. a failing source."""
    embed = Embed(
        title=_clip(f"Scan problem: {target.name}", _TITLE_LIMIT),
        description=_clip(message, 4000),
        colour=Colour(0xFF0000),
        timestamp=datetime.now(tz=timezone.utc),
    )
    embed.set_footer(text=target.key)
    return embed


class DiscordWebhookNotifier(Notifier):
    """Posts embeds to Discord webhooks, one message at a time.

    Each post is followed by a fixed pacing delay. A 429 or 5xx reply is
    retried once after the delay the reply asks for.
    """

    name = "DiscordWebhookNotifier"

    def __init__(
        self,
        http: Optional[HttpClient] = None,
        pacing_delay: float = PACING_DELAY_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.http = http or HttpClient(max_retries=2, base_delay=RATE_LIMIT_FALLBACK_S, max_delay=60.0)
        self.pacing_delay = pacing_delay
        self._sleep = sleep

    async def close(self) -> None:
        await self.http.close()

    async def _post(self, destination: Webhook, payload: Dict[str, Any]) -> None:
        try:
            await self.http.post_json(destination.url, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationDeliveryError(
                f"Discord webhook '{destination.name}' rejected message: {e}"
            ) from e
        finally:
            logger.debug(f"Waiting {self.pacing_delay:g} seconds before next notification...")
            await self._sleep(self.pacing_delay)

    async def notify(self, destination: Webhook, item: RawItem, target: MonitoredTarget) -> None:
        """Send one new-item message."""
        logger.info(f"Sending notification for item: {item.title}")
        payload = {
            "content": f"🔔 New item found in {target.name}!",
            "embeds": [build_item_embed(item, target).to_dict()],
        }
        await self._post(destination, payload)
        logger.info("Discord notification sent successfully")

    async def alert(self, destination: Webhook, target: MonitoredTarget, message: str) -> None:
        """Send an operational alert."""
        payload = {"embeds": [build_alert_embed(target, message).to_dict()]}
        await self._post(destination, payload)
