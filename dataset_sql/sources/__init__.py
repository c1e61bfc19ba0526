"""
Sources package for dataset exports.

This module re-exports the abstract interfaces and the concrete collection
sources so downstream code can import from `dataset_sql.sources` directly.
"""

from dataset_sql.sources.abstract import AbstractCollectionSource, CollectionSource
from dataset_sql.sources.apify import ApifyDatasetSource, build_api_client
from dataset_sql.sources.local import LocalDatasetSource

__all__ = [
    # Abstracts
    "AbstractCollectionSource",
    "CollectionSource",
    # Concrete sources
    "ApifyDatasetSource",
    "LocalDatasetSource",
    "build_api_client",
]
