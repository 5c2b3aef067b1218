"""Destination catalog search adapters."""

from catalog.providers.base import CatalogAuthError, CatalogSearchError
from catalog.providers.dab import DabCatalog
from catalog.providers.qobuz import QobuzCatalog
from catalog.search import CatalogSearchClient

__all__ = [
    "CatalogAuthError",
    "CatalogSearchClient",
    "CatalogSearchError",
    "DabCatalog",
    "QobuzCatalog",
]
