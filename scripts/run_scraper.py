"""Manual scrape runner for testing and debugging adapters.

Runs one keyword scrape against one URL through the full orchestrator
(adapter lookup, API search, HTML search, pagination) and prints what it
found. The configured database is used for site lookups and site maps.

Usage:
    python scripts/run_scraper.py --url https://www.leverarms.com --keyword tikka
    python scripts/run_scraper.py --url icollector.com --keyword rifle --fast
    python scripts/run_scraper.py --url https://www.marstar.ca --keyword sks --max-price 500
"""

import argparse
import asyncio
import os
import sys
from decimal import Decimal

# Add backend to path so we can import listingwatch modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers.base import ScrapeOptions
from listingwatch.scrapers.register_adapters import register_all_adapters
from listingwatch.scrapers.scraper_service import ScrapeOrchestrator


async def run_scraper(url: str, keyword: str, options: ScrapeOptions, limit: int = 10):
    """Scrape a URL for a keyword and display the results.

    Args:
        url: Target URL or bare domain
        keyword: Keyword to search for
        options: Filters and fast-mode flag
        limit: Maximum number of items to display (default: 10)
    """
    register_all_adapters()
    orchestrator = ScrapeOrchestrator()

    print(f"\n{'='*70}")
    print(f"  Scraping {url} for '{keyword}'")
    print(f"{'='*70}")
    print(f"  Fast mode: {options.fast}")
    if options.max_price is not None:
        print(f"  Max price: {options.max_price}")
    if options.in_stock_only:
        print("  In stock only")
    print(f"{'='*70}\n")

    try:
        result = await orchestrator.scrape(url, keyword, options)
    except FetchError as e:
        print(f"\nError: site unreachable ({e.kind})")
        print(f"   {e}\n")
        return

    print(f"Adapter: {result.adapter_used}")
    print(f"Content hash: {result.content_hash}")
    if result.login_required:
        print("Login required: results are hidden behind a login wall")
    for error in result.errors:
        print(f"Stage error: {error}")

    if not result.items:
        print("\nNo matching listings found.\n")
        return

    print(f"\nFound {len(result.items)} listings\n")
    for i, item in enumerate(result.items[:limit], 1):
        print(f"[{i}] {item.title}")
        if item.price is not None:
            print(f"    Price: {_format_price(item.price)}")
        if item.in_stock is False:
            print("    Out of stock")
        if item.post_date:
            print(f"    Posted: {item.post_date}")
        print(f"    URL: {item.url[:100]}")
        print()


def _format_price(price: Decimal) -> str:
    return f"${price:,.2f}"


def main():
    """Parse arguments and run the scraper."""
    parser = argparse.ArgumentParser(
        description="Run a keyword scrape against one site",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --url https://www.leverarms.com --keyword tikka
  python scripts/run_scraper.py --url icollector.com --keyword rifle --fast
        """,
    )

    parser.add_argument("--url", required=True, help="Target URL or bare domain")
    parser.add_argument("--keyword", required=True, help="Keyword to search for")
    parser.add_argument("--fast", action="store_true", help="No pre-delay, no pagination")
    parser.add_argument("--in-stock-only", action="store_true", help="Drop out-of-stock listings")
    parser.add_argument("--max-price", type=Decimal, help="Drop listings priced above this")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of listings to display (default: 10)",
    )

    args = parser.parse_args()

    options = ScrapeOptions(
        in_stock_only=args.in_stock_only,
        max_price=args.max_price,
        fast=args.fast,
    )
    url = args.url if "://" in args.url else f"https://{args.url}"
    asyncio.run(run_scraper(url, args.keyword, options, args.limit))


if __name__ == "__main__":
    main()
