"""Persisted match storage for delta detection."""

from datetime import datetime, timezone
from typing import List
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.models.match import Match
from listingwatch.scrapers.base import ScrapedItem
from listingwatch.scrapers.delta import DeltaResult

logger = structlog.get_logger(__name__)


class MatchService:
    """Service for reading and writing a target's matches.

    Matches are keyed by (target_id, url). Known matches get their mutable
    fields refreshed; first_found_at and post_date never change.
    """

    def __init__(self, db: AsyncSession):
        """Initialize match service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="match_service")

    async def find_urls_by_target(self, target_id: UUID) -> List[str]:
        """URLs of every match stored for a target."""
        result = await self.db.execute(select(Match.url).where(Match.target_id == target_id))
        return list(result.scalars().all())

    async def find_by_target(self, target_id: UUID) -> List[Match]:
        result = await self.db.execute(
            select(Match).where(Match.target_id == target_id).order_by(Match.first_found_at)
        )
        return list(result.scalars().all())

    async def upsert_items(
        self,
        target_id: UUID,
        delta: DeltaResult,
        content_hash: str,
    ) -> List[Match]:
        """Refresh known matches and insert new ones.

        Args:
            target_id: Target UUID
            delta: Partitioned scrape items
            content_hash: Hash of the scrape the items came from

        Returns:
            The newly inserted Match rows (flushed, IDs assigned)
        """
        now = datetime.now(timezone.utc)

        if delta.updated:
            result = await self.db.execute(
                select(Match).where(
                    Match.target_id == target_id,
                    Match.url.in_([item.url for item in delta.updated]),
                )
            )
            by_url = {match.url: match for match in result.scalars().all()}
            for item in delta.updated:
                match = by_url.get(item.url)
                if match is None:
                    continue
                match.title = item.title
                match.price = item.price
                match.content_hash = content_hash
                match.updated_at = now
                if item.thumbnail:
                    match.thumbnail = item.thumbnail
                if item.seller:
                    match.seller = item.seller

        inserted: List[Match] = []
        for item in delta.new:
            match = Match(
                target_id=target_id,
                url=item.url,
                title=item.title,
                price=item.price,
                thumbnail=item.thumbnail,
                seller=item.seller,
                post_date=item.post_date,
                content_hash=content_hash,
                first_found_at=now,
            )
            self.db.add(match)
            inserted.append(match)

        await self.db.flush()

        self.logger.info(
            "matches_upserted",
            target_id=str(target_id),
            updated=len(delta.updated),
            inserted=len(inserted),
        )
        return inserted
