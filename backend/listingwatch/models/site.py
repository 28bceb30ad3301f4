"""Monitored site configuration consumed by the adapter registry."""

from typing import Optional

from sqlalchemy import String, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class MonitoredSite(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A website the engine knows how to scrape.

    Rows are created by configuration/admin tooling. The registry reads
    enabled rows to map domains onto adapters; "scan all" batch runs iterate
    over the same enabled set.
    """

    __tablename__ = "monitored_sites"

    domain: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False,
        comment="Normalized domain without www. prefix"
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    origin_url: Mapped[str] = mapped_column(String(500), nullable=False)
    site_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="generic",
        comment="One of: 'retailer', 'forum', 'classifieds', 'auction', 'generic'"
    )
    adapter_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default="generic",
        comment="Registry key of the adapter that handles this site"
    )
    search_url_pattern: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Path template containing {keyword}"
    )
    requires_auth: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_challenge: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Site sits behind a JS cookie challenge"
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<MonitoredSite(domain='{self.domain}', adapter_type='{self.adapter_type}', enabled={self.enabled})>"
