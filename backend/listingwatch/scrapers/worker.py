"""Per-target tick: scrape, detect new listings, notify.

Each scheduled tick for a monitored target runs process_target(). Scrape
failures propagate so the scheduler's retry policy applies; delivery
failures are recorded on the notification and never retried here.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.config import settings
from listingwatch.core.exceptions import LoginFailedError
from listingwatch.models.match import Match
from listingwatch.models.target import MonitoredTarget
from listingwatch.scrapers.auth_manager import ForumAuthenticator, get_forum_authenticator
from listingwatch.scrapers.base import ScrapedItem, ScrapeOptions, ScrapeResult
from listingwatch.scrapers.delta import DeltaEngine
from listingwatch.scrapers.scraper_service import ScrapeOrchestrator
from listingwatch.services.credential_crypto import decrypt_password
from listingwatch.services.delivery import NotificationDelivery, get_notification_delivery
from listingwatch.services.match_service import MatchService
from listingwatch.services.notification_service import (
    STATUS_FAILED,
    STATUS_SENT,
    NotificationService,
)
from listingwatch.services.target_service import TargetService

logger = structlog.get_logger(__name__)


class TickOutcome(str, enum.Enum):
    NOT_FOUND = "not_found"
    PAUSED = "paused"
    EXPIRED = "expired"
    NO_CHANGE = "no_change"
    UPDATED = "updated"
    NEW_MATCHES = "new_matches"

    @property
    def unschedules(self) -> bool:
        """True when the target's repeating job should be removed."""
        return self in (TickOutcome.NOT_FOUND, TickOutcome.EXPIRED)


@dataclass
class TickReport:
    outcome: TickOutcome
    items_found: int = 0
    items_new: int = 0
    items_updated: int = 0
    content_hash: Optional[str] = None
    notifications_sent: int = 0
    notifications_failed: int = 0


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def notification_channels(target: MonitoredTarget) -> List[Tuple[str, str]]:
    """(channel, recipient) pairs enabled for a target."""
    channels = []
    if target.notification_type in ("email", "both") and target.notify_email:
        channels.append(("email", target.notify_email))
    if target.notification_type in ("sms", "both") and target.notify_phone:
        channels.append(("sms", target.notify_phone))
    return channels


class ScrapeWorker:
    """Runs one tick of a monitored target's state machine."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        orchestrator: Optional[ScrapeOrchestrator] = None,
        authenticator: Optional[ForumAuthenticator] = None,
        delivery: Optional[NotificationDelivery] = None,
        fast: Optional[bool] = None,
    ):
        """Initialize worker.

        Args:
            session_factory: Async session factory for database access
            orchestrator: Scrape orchestrator
            authenticator: Forum login collaborator
            delivery: Notification delivery collaborator
            fast: Scrape in fast mode (no pre-delay, no pagination)
        """
        self.session_factory = session_factory
        self.orchestrator = orchestrator or ScrapeOrchestrator()
        self.authenticator = authenticator or get_forum_authenticator()
        self.delivery = delivery or get_notification_delivery()
        self.fast = settings.WORKER_FAST_MODE if fast is None else fast
        self.logger = logger.bind(service="scrape_worker")

    async def process_target(self, target_id: UUID) -> TickReport:
        """Run one tick for a target.

        Args:
            target_id: MonitoredTarget UUID

        Returns:
            TickReport describing the outcome and delta counts

        Raises:
            FetchError: If the site could not be scraped at all
        """
        async with self.session_factory() as db:
            targets = TargetService(db)
            target = await targets.get_target(target_id)

            if target is None:
                self.logger.warning("target_not_found", target_id=str(target_id))
                return TickReport(TickOutcome.NOT_FOUND)

            if target.status == "paused":
                self.logger.debug("target_paused", target_id=str(target_id))
                return TickReport(TickOutcome.PAUSED)

            now = datetime.now(timezone.utc)
            if target.status == "expired" or (
                target.expires_at is not None and _as_utc(target.expires_at) <= now
            ):
                if target.status != "expired":
                    await targets.mark_expired(target)
                    await db.commit()
                return TickReport(TickOutcome.EXPIRED)

            cookies = await self._resolve_session(db, target)

            options = ScrapeOptions(
                in_stock_only=target.in_stock_only,
                max_price=target.max_price,
                cookies=cookies,
                fast=self.fast,
            )
            result = await self.orchestrator.scrape(target.website_url, target.keyword, options)

            if result.login_required:
                return await self._login_walled(db, target, result)

            previous_hash = target.last_content_hash
            matches = MatchService(db)
            existing_urls = await matches.find_urls_by_target(target.id)
            delta = DeltaEngine.partition(existing_urls, result.items)
            inserted = await matches.upsert_items(target.id, delta, result.content_hash)
            await targets.update_target_checked(target.id, result.scraped_at, result.content_hash)
            await db.commit()

            report = TickReport(
                outcome=TickOutcome.NO_CHANGE,
                items_found=len(result.items),
                items_new=len(delta.new),
                items_updated=len(delta.updated),
                content_hash=result.content_hash,
            )

            if not delta.has_new:
                if previous_hash != result.content_hash:
                    report.outcome = TickOutcome.UPDATED
                self.logger.info(
                    "tick_no_new_matches",
                    target_id=str(target.id),
                    outcome=report.outcome.value,
                    updated=len(delta.updated),
                )
                return report

            report.outcome = TickOutcome.NEW_MATCHES
            self.logger.info(
                "tick_new_matches",
                target_id=str(target.id),
                keyword=target.keyword,
                new=len(delta.new),
                updated=len(delta.updated),
            )
            await self._notify(db, target, delta.new, inserted, report)
            return report

    async def _login_walled(
        self, db: AsyncSession, target: MonitoredTarget, result: ScrapeResult
    ) -> TickReport:
        """The site demanded a login; keep the content hash and force a fresh login next tick."""
        targets = TargetService(db)
        if target.credential is not None and target.credential.session_cookies:
            await targets.clear_session(target.credential)
        await targets.update_target_checked(target.id, result.scraped_at)
        await db.commit()

        self.logger.warning(
            "tick_login_required",
            target_id=str(target.id),
            has_credential=target.credential is not None,
        )
        return TickReport(TickOutcome.NO_CHANGE, content_hash=target.last_content_hash)

    async def _resolve_session(self, db: AsyncSession, target: MonitoredTarget) -> Optional[str]:
        """Cookies for the target's forum credential, logging in when needed.

        A failed login is logged and the scrape proceeds unauthenticated.
        """
        credential = target.credential
        if credential is None:
            return None

        if credential.session_cookies and await self.authenticator.validate_session(
            credential.domain, credential.session_cookies
        ):
            self.logger.debug("session_reused", domain=credential.domain)
            return credential.session_cookies

        try:
            password = decrypt_password(credential.encrypted_password)
        except ValueError as e:
            self.logger.error("credential_decrypt_failed", domain=credential.domain, error=str(e))
            return None

        try:
            cookies = await self.authenticator.login(credential.domain, credential.username, password)
        except LoginFailedError as e:
            self.logger.warning("forum_login_failed", domain=credential.domain, error=str(e))
            return None

        await TargetService(db).save_session(credential, cookies)
        await db.commit()
        return cookies

    async def _notify(
        self,
        db: AsyncSession,
        target: MonitoredTarget,
        new_items: List[ScrapedItem],
        inserted: List[Match],
        report: TickReport,
    ) -> None:
        notifications = NotificationService(db)
        match_ids = [match.id for match in inserted]

        for channel, recipient in notification_channels(target):
            notification = await notifications.create_notification(target.id, channel, recipient)
            await notifications.link_notification_items(notification.id, match_ids)
            await db.commit()

            try:
                delivered = await self.delivery.deliver(
                    channel, recipient, target.keyword, new_items, notification.id
                )
                error = None if delivered else "delivery rejected"
            except Exception as e:
                delivered = False
                error = str(e)
                self.logger.error("notification_delivery_error", channel=channel, error=error, exc_info=True)

            await notifications.mark_status(
                notification.id, STATUS_SENT if delivered else STATUS_FAILED, error
            )
            await db.commit()

            if delivered:
                report.notifications_sent += 1
            else:
                report.notifications_failed += 1
            self.logger.info(
                "notification_recorded",
                target_id=str(target.id),
                channel=channel,
                delivered=delivered,
                matches=len(match_ids),
            )
