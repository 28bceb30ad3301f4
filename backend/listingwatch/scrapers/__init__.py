"""Scraper system for monitoring keywords across listing sites.

This package provides:
- Base adapter classes for building site-family adapters
- Utility modules for pacing, retries and data normalization
- Registry for resolving a URL to its adapter
- Orchestrator, worker and scheduler for automated monitoring
"""

from .base import (
    BaseAdapter,
    ScrapedItem,
    ScrapeOptions,
    ScrapeResult,
)
from .registry import AdapterRegistry, adapter_registry, get_adapter_registry

__all__ = [
    # Base classes
    "BaseAdapter",
    # Data structures
    "ScrapedItem",
    "ScrapeOptions",
    "ScrapeResult",
    # Registry
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter_registry",
]
