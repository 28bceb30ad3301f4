"""Services module for business logic and data operations.

This module contains service classes that implement the data access of
the ListingWatch platform. Services take an AsyncSession, flush their
writes and leave committing to the caller.
"""

from listingwatch.services.health_check_service import HealthCheckService
from listingwatch.services.match_service import MatchService
from listingwatch.services.notification_service import NotificationService
from listingwatch.services.site_config_service import SiteConfigService
from listingwatch.services.target_service import TargetService

__all__ = [
    "HealthCheckService",
    "MatchService",
    "NotificationService",
    "SiteConfigService",
    "TargetService",
]
