"""Tests for site seeding, site configuration queries and notification delivery."""

import json
import uuid

import httpx
import pytest

from listingwatch.db.seed import SITES, seed_sites
from listingwatch.models import MonitoredSite
from listingwatch.scrapers.base import ScrapedItem
from listingwatch.services import SiteConfigService
from listingwatch.services.delivery import LogOnlyDelivery, WebhookDelivery


class TestSeedSites:
    @pytest.mark.asyncio
    async def test_seed_is_rerunnable(self, session_factory):
        async with session_factory() as db:
            db.add(MonitoredSite(domain="guns4u.ca", name="Guns4U", origin_url="https://guns4u.ca"))
            await db.commit()

        async with session_factory() as db:
            first = await seed_sites(db)
        async with session_factory() as db:
            second = await seed_sites(db)

        assert first == {"created": len(SITES), "updated": 0, "disabled": 1}
        assert second == {"created": 0, "updated": len(SITES), "disabled": 0}

    @pytest.mark.asyncio
    async def test_enabled_site_configs(self, session_factory):
        async with session_factory() as db:
            await seed_sites(db)
            configs = await SiteConfigService(db).list_enabled_site_configs()
            gunpost = await SiteConfigService(db).get_site_by_domain("www.gunpost.ca")

        assert len(configs) == len(SITES)
        assert [config.domain for config in configs] == sorted(config.domain for config in configs)
        assert gunpost.adapter_type == "classifieds-gunpost"
        assert gunpost.search_url_pattern == "/ads?key={keyword}"


class TestDelivery:
    items = [ScrapedItem(title="Tikka T3x", url="https://shop.example.com/t3x")]

    @pytest.mark.asyncio
    async def test_webhook_posts_batch(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        delivery = WebhookDelivery("https://notify.example.com/hook", transport=httpx.MockTransport(handler))
        notification_id = uuid.uuid4()

        assert await delivery.deliver("email", "owner@example.com", "tikka", self.items, notification_id)

        [payload] = received
        assert payload["notification_id"] == str(notification_id)
        assert payload["keyword"] == "tikka"
        assert payload["matches"][0]["url"] == "https://shop.example.com/t3x"
        assert payload["matches"][0]["price"] is None

    @pytest.mark.asyncio
    async def test_webhook_rejection(self):
        delivery = WebhookDelivery(
            "https://notify.example.com/hook",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        assert not await delivery.deliver("sms", "+15555550100", "tikka", self.items, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_log_only(self):
        assert await LogOnlyDelivery().deliver("email", "a@example.com", "tikka", self.items, uuid.uuid4())
