"""Daily site health check results."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, Integer, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base, UUIDPrimaryKeyMixin


class SiteHealthCheck(UUIDPrimaryKeyMixin, Base):
    """One reachability and structure check of a monitored site's homepage.

    Rows older than the retention window are pruned after each daily run.
    """

    __tablename__ = "site_health_checks"

    site_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    is_reachable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_scrape: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    detected_site_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Site type the homepage markup looks like today"
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return (
            f"<SiteHealthCheck(site_id={self.site_id}, reachable={self.is_reachable}, "
            f"can_scrape={self.can_scrape})>"
        )
