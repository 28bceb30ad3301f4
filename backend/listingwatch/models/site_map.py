"""Cached site discovery results."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base, UUIDPrimaryKeyMixin


class SiteMap(UUIDPrimaryKeyMixin, Base):
    """Listing pages and search template discovered for a domain.

    Entries live for 7 days when listing pages were found and 1 day when
    discovery came back empty.
    """

    __tablename__ = "site_maps"

    domain: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    listing_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    search_url_template: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    site_type: Mapped[str] = mapped_column(String(20), nullable=False, default="generic")
    discovered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SiteMap(domain='{self.domain}', listings={len(self.listing_urls or [])})>"
