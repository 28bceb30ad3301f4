"""SQLAlchemy models for ListingWatch.

All models are imported here so table creation and migrations see them.
"""

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from listingwatch.models.credential import SiteCredential
from listingwatch.models.site import MonitoredSite
from listingwatch.models.target import MonitoredTarget
from listingwatch.models.match import Match
from listingwatch.models.notification import Notification, NotificationMatch
from listingwatch.models.site_map import SiteMap
from listingwatch.models.scrape_run import ScrapeRun
from listingwatch.models.health_check import SiteHealthCheck

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "SiteCredential",
    "MonitoredSite",
    "MonitoredTarget",
    "Match",
    "Notification",
    "NotificationMatch",
    "SiteMap",
    "ScrapeRun",
    "SiteHealthCheck",
]
