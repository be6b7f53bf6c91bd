"""
Canonical records produced by extractors.

Every record carries a ``metadata`` dict with at least:
- retailer: retailer slug
- source_url: page the record was extracted from
- extracted_at: ISO-8601 extraction timestamp
- extraction_strategy: "structured-data" or "markup"
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

STRATEGY_STRUCTURED_DATA = "structured-data"
STRATEGY_MARKUP = "markup"


@dataclass
class ListingReference:
    """A product page URL discovered on a listing or category page."""

    url: str
    retailer: str
    category: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    kind = "listing"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProductRecord:
    """Product details extracted from a product page. Prices are in pence."""

    title: str
    price_pence: int
    description: Optional[str] = None
    brand: Optional[str] = None
    original_price_pence: Optional[int] = None
    in_stock: bool = True
    weight_grams: Optional[int] = None
    quantity: Optional[int] = None
    images: List[str] = field(default_factory=list)
    external_id: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    rating_value: Optional[float] = None
    rating_count: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    kind = "product"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReviewRecord:
    """A customer review. Ratings run from 0 to 5 and may be fractional."""

    external_id: str
    rating: float
    body: str
    author: Optional[str] = None
    title: Optional[str] = None
    review_date: Optional[date] = None
    verified_purchase: bool = False
    helpful_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    kind = "review"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["review_date"] = self.review_date.isoformat() if self.review_date else None
        return data
