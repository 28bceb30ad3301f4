"""Forum credentials and their cached session cookies."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SiteCredential(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Login for a members-only site.

    ``encrypted_password`` is sealed with services.credential_crypto.
    ``session_cookies`` holds the last good Cookie header so ticks can skip
    the login round-trip while the session is still valid.
    """

    __tablename__ = "site_credentials"

    domain: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    encrypted_password: Mapped[str] = mapped_column(String(500), nullable=False)
    session_cookies: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SiteCredential(domain='{self.domain}', username='{self.username}')>"
