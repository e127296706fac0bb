"""Scraper system for keeping the catalog in sync with e-commerce platforms.

This package provides:
- The extraction adapter interface and the bundled platform adapters
- Fetch strategies (direct HTTP, browser-rendered) with retry and escalation
- Pagination walking under a run budget
- The registry of adapters and the orchestration service
"""

from .base import ExtractionAdapter, ProductRecord, validate_record
from .budget import RunBudget
from .registry import AdapterRegistry, adapter_registry, get_adapter_registry, register_default_adapters

__all__ = [
    # Adapter interface
    "ExtractionAdapter",
    "ProductRecord",
    "validate_record",
    # Budget
    "RunBudget",
    # Registry
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter_registry",
    "register_default_adapters",
]
