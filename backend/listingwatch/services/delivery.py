"""Notification delivery collaborators.

The worker hands each new-match batch to a NotificationDelivery and only
records whether it went out. Email and SMS gateways live behind the webhook.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

import httpx
import structlog

from listingwatch.config import settings
from listingwatch.scrapers.base import ScrapedItem

logger = structlog.get_logger(__name__)


def _item_payload(item: ScrapedItem) -> dict:
    return {
        "title": item.title,
        "url": item.url,
        "price": str(item.price) if item.price is not None else None,
        "thumbnail": item.thumbnail,
        "seller": item.seller,
    }


class NotificationDelivery(ABC):
    """Delivers one notification on one channel."""

    @abstractmethod
    async def deliver(
        self,
        channel: str,
        recipient: str,
        keyword: str,
        items: List[ScrapedItem],
        notification_id: UUID,
    ) -> bool:
        """Send a new-matches message.

        Args:
            channel: "email" or "sms"
            recipient: Address or phone number
            keyword: Keyword the matches were found for
            items: The new matches
            notification_id: Notification record ID (for tracking links)

        Returns:
            True if the message was accepted for delivery
        """


class WebhookDelivery(NotificationDelivery):
    """POSTs the batch as JSON to a delivery gateway."""

    def __init__(self, url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self._transport = transport

    async def deliver(self, channel, recipient, keyword, items, notification_id) -> bool:
        payload = {
            "notification_id": str(notification_id),
            "channel": channel,
            "recipient": recipient,
            "keyword": keyword,
            "matches": [_item_payload(item) for item in items],
            "frontend_url": settings.FRONTEND_URL,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("webhook_delivery_failed", channel=channel, error=str(e))
            return False

        if response.status_code >= 400:
            logger.warning("webhook_delivery_rejected", channel=channel, status=response.status_code)
            return False
        return True


class LogOnlyDelivery(NotificationDelivery):
    """Logs the batch instead of sending it (development default)."""

    async def deliver(self, channel, recipient, keyword, items, notification_id) -> bool:
        logger.info(
            "notification_logged",
            channel=channel,
            recipient=recipient,
            keyword=keyword,
            matches=len(items),
            notification_id=str(notification_id),
        )
        return True


def get_notification_delivery() -> NotificationDelivery:
    """Webhook delivery when NOTIFY_WEBHOOK_URL is set, log-only otherwise."""
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookDelivery(settings.NOTIFY_WEBHOOK_URL)
    return LogOnlyDelivery()
