"""Catalog services: reconciliation, catalog stores, run stats and reporting."""
