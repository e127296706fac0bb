"""Scraping orchestration engine that keeps a product catalog in sync with e-commerce platforms."""

__version__ = "0.1.0"
