"""
Extraction protocol: extractors turn retailer pages into canonical records.
"""

from .base import BaseExtractor, ListingExtractor, ProductDetailsExtractor, ReviewExtractor
from .results import ListingReference, ProductRecord, ReviewRecord

__all__ = [
    "BaseExtractor",
    "ListingExtractor",
    "ProductDetailsExtractor",
    "ReviewExtractor",
    "ListingReference",
    "ProductRecord",
    "ReviewRecord",
]
