"""Typed records produced by page extraction.

Every extractor returns one of the ``*Result`` classes below. The variant is
keyed by :class:`TargetKind` so the coordinator can check that an extractor
answered with the shape it was asked for before anything is cached.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union


class TargetKind(str, Enum):
    """Kinds of remote pages the crawler knows how to fetch."""

    NAVIGATION = "navigation"
    CATEGORY = "category"
    PRODUCT = "product"
    PRODUCT_DETAIL = "product_detail"
    REVIEWS = "reviews"


# product and product_detail resolve to the same record shape, so they share a namespace
CACHE_NAMESPACES: dict[TargetKind, str] = {
    TargetKind.NAVIGATION: "nav",
    TargetKind.CATEGORY: "cat",
    TargetKind.PRODUCT: "prod",
    TargetKind.PRODUCT_DETAIL: "prod",
    TargetKind.REVIEWS: "rev",
}


def cache_key(kind: TargetKind, url: str) -> str:
    """Return the namespaced fetch key for ``url`` fetched as ``kind``."""

    return f"{CACHE_NAMESPACES[TargetKind(kind)]}:{url}"


@dataclass(slots=True)
class NavigationItem:
    title: str
    url: str


@dataclass(slots=True)
class ProductListing:
    """One product card found on a category page."""

    title: str | None
    url: str | None
    price: str | None = None
    author: str | None = None
    image_url: str | None = None

    @property
    def identity(self) -> str:
        return f"{self.title}:{self.url}"


@dataclass(slots=True)
class Review:
    author: str | None
    rating: int
    text: str | None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ProductDetail:
    """Full product page including reviews and bibliographic metadata."""

    title: str | None = None
    description: str | None = None
    price: str | None = None
    author: str | None = None
    image_url: str | None = None
    rating_avg: float = 0.0
    reviews: list[Review] = field(default_factory=list)
    metadata: dict[str, str | None] = field(default_factory=dict)
    source_id: str | None = None
    source_url: str | None = None
    last_scraped_at: datetime | None = None


@dataclass(slots=True)
class NavigationResult:
    kind: ClassVar[TargetKind] = TargetKind.NAVIGATION
    items: list[NavigationItem] = field(default_factory=list)

    @property
    def result_count(self) -> int:
        return len(self.items)

    def rows(self) -> list[dict[str, Any]]:
        return [asdict(item) for item in self.items]


@dataclass(slots=True)
class ListingResult:
    kind: ClassVar[TargetKind] = TargetKind.CATEGORY
    products: list[ProductListing] = field(default_factory=list)

    @property
    def result_count(self) -> int:
        return len(self.products)

    def rows(self) -> list[dict[str, Any]]:
        return [asdict(product) for product in self.products]


@dataclass(slots=True)
class ProductDetailResult:
    kind: ClassVar[TargetKind] = TargetKind.PRODUCT_DETAIL
    detail: ProductDetail = field(default_factory=ProductDetail)

    @property
    def result_count(self) -> int:
        return 1

    def rows(self) -> list[dict[str, Any]]:
        return [asdict(self.detail)]


@dataclass(slots=True)
class ReviewsResult:
    kind: ClassVar[TargetKind] = TargetKind.REVIEWS
    reviews: list[Review] = field(default_factory=list)

    @property
    def result_count(self) -> int:
        return len(self.reviews)

    def rows(self) -> list[dict[str, Any]]:
        return [asdict(review) for review in self.reviews]


ExtractedRecord = Union[NavigationResult, ListingResult, ProductDetailResult, ReviewsResult]

RESULT_TYPES: dict[TargetKind, type] = {
    TargetKind.NAVIGATION: NavigationResult,
    TargetKind.CATEGORY: ListingResult,
    TargetKind.PRODUCT: ProductDetailResult,
    TargetKind.PRODUCT_DETAIL: ProductDetailResult,
    TargetKind.REVIEWS: ReviewsResult,
}


def matches_kind(kind: TargetKind, record: object) -> bool:
    """Return True when ``record`` is the variant expected for ``kind``."""

    return isinstance(record, RESULT_TYPES[TargetKind(kind)])


@dataclass(slots=True)
class CategoryPage:
    """Category listing returned to callers of ``fetch_category``."""

    title: str
    url: str
    products: list[ProductListing]

    @property
    def count(self) -> int:
        return len(self.products)


__all__ = [
    "CACHE_NAMESPACES",
    "CategoryPage",
    "ExtractedRecord",
    "ListingResult",
    "NavigationItem",
    "NavigationResult",
    "ProductDetail",
    "ProductDetailResult",
    "ProductListing",
    "RESULT_TYPES",
    "Review",
    "ReviewsResult",
    "TargetKind",
    "cache_key",
    "matches_kind",
]
