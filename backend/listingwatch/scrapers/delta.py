"""Delta detection: which scraped items are new for a target."""

from dataclasses import dataclass, field
from typing import Iterable, List

from listingwatch.scrapers.base import ScrapedItem


@dataclass
class DeltaResult:
    new: List[ScrapedItem] = field(default_factory=list)
    updated: List[ScrapedItem] = field(default_factory=list)

    @property
    def has_new(self) -> bool:
        return bool(self.new)


class DeltaEngine:
    """Partitions fresh items against a target's persisted URLs.

    Identity is the exact stored URL; titles never take part. Persisted
    items missing from the fresh scrape are not reported and stay untouched.
    """

    @staticmethod
    def partition(existing_urls: Iterable[str], items: Iterable[ScrapedItem]) -> DeltaResult:
        """Split items into unseen (new) and already persisted (updated).

        Args:
            existing_urls: URLs already stored for the target
            items: Items from the latest scrape (deduplicated)

        Returns:
            DeltaResult keeping the input order in both lists
        """
        known = set(existing_urls)
        result = DeltaResult()
        for item in items:
            if item.url in known:
                result.updated.append(item)
            else:
                result.new.append(item)
        return result
