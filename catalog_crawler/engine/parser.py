"""DOM parsing of catalog pages into typed records."""

from __future__ import annotations

import re
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from .records import (
    ExtractedRecord,
    ListingResult,
    NavigationItem,
    NavigationResult,
    ProductDetail,
    ProductDetailResult,
    ProductListing,
    Review,
    ReviewsResult,
    TargetKind,
)

NAVIGATION_SELECTOR = 'nav a, .navbar a, .menu a, [role="navigation"] a'
LISTING_SELECTOR = ".product-item, .book-card, [data-product], .product-card, .book-listing, .item-box"
REVIEW_SELECTOR = ".review, .customer-review, [data-review]"

_FLOAT_PATTERN = re.compile(r"\d+\.?\d*")
_INT_PATTERN = re.compile(r"\d+")


def _text(scope: Node | HTMLParser, selector: str) -> str | None:
    node = scope.css_first(selector)
    if node is None:
        return None
    value = node.text(separator=" ", strip=True)
    return value or None


class PageParser:
    """Turn rendered HTML into the record variant for a target kind."""

    def __init__(self, navigation_limit: int = 20, listing_limit: int = 100) -> None:
        self.navigation_limit = navigation_limit
        self.listing_limit = listing_limit

    def parse(self, kind: TargetKind, html: str, base_url: str) -> ExtractedRecord:
        kind = TargetKind(kind)
        if kind is TargetKind.NAVIGATION:
            return self.parse_navigation(html, base_url)
        if kind is TargetKind.CATEGORY:
            return self.parse_listing(html, base_url)
        if kind is TargetKind.REVIEWS:
            return ReviewsResult(reviews=self._parse_reviews(HTMLParser(html)))
        return self.parse_detail(html, base_url)

    def parse_navigation(self, html: str, base_url: str) -> NavigationResult:
        parser = HTMLParser(html)
        items: list[NavigationItem] = []
        for node in parser.css(NAVIGATION_SELECTOR)[: self.navigation_limit]:
            title = node.text(separator=" ", strip=True)
            if not title:
                continue
            href = (node.attributes.get("href") or "").strip()
            items.append(NavigationItem(title=title, url=urljoin(base_url, href) if href else ""))
        return NavigationResult(items=items)

    def parse_listing(self, html: str, base_url: str) -> ListingResult:
        """Extract product cards; cards without a title or link are dropped."""

        parser = HTMLParser(html)
        products: list[ProductListing] = []
        for card in parser.css(LISTING_SELECTOR)[: self.listing_limit]:
            link = card.css_first("a[href]")
            href = (link.attributes.get("href") or "").strip() if link is not None else ""
            image = card.css_first("img")
            image_url = None
            if image is not None:
                image_url = image.attributes.get("src") or image.attributes.get("data-src")
            listing = ProductListing(
                title=_text(card, "h2, h3, .title, a.name"),
                url=urljoin(base_url, href) if href else None,
                price=_text(card, ".price, [data-price], .product-price"),
                author=_text(card, ".author, [data-author], .by"),
                image_url=urljoin(base_url, image_url) if image_url else None,
            )
            if listing.title and listing.url:
                products.append(listing)
        return ListingResult(products=products)

    def parse_detail(self, html: str, base_url: str) -> ProductDetailResult:
        parser = HTMLParser(html)
        image = parser.css_first("img[src], img[data-src]")
        image_url = None
        if image is not None:
            image_url = image.attributes.get("src") or image.attributes.get("data-src")
        rating_text = _text(parser, ".rating, [data-rating], .stars") or ""
        rating_match = _FLOAT_PATTERN.search(rating_text)
        detail = ProductDetail(
            title=_text(parser, "h1, .product-title, [data-title]"),
            description=_text(
                parser, ".description, [data-description], .product-description, .details"
            ),
            price=_text(parser, ".price, [data-price]"),
            author=_text(parser, ".author, [data-author], .by"),
            image_url=urljoin(base_url, image_url) if image_url else None,
            rating_avg=float(rating_match.group(0)) if rating_match else 0.0,
            reviews=self._parse_reviews(parser),
            metadata={
                "isbn": _text(parser, "[data-isbn], .isbn"),
                "publisher": _text(parser, "[data-publisher], .publisher"),
                "publication_date": _text(parser, "[data-publication], .published"),
            },
        )
        return ProductDetailResult(detail=detail)

    @staticmethod
    def _parse_reviews(parser: HTMLParser) -> list[Review]:
        reviews: list[Review] = []
        for node in parser.css(REVIEW_SELECTOR):
            author = _text(node, ".reviewer-name, .user-name, .author")
            text = _text(node, ".review-text, .comment, .text")
            if not author or not text:
                continue
            rating_match = _INT_PATTERN.search(_text(node, ".review-rating, .stars, [data-rating]") or "")
            reviews.append(
                Review(
                    author=author,
                    rating=int(rating_match.group(0)) if rating_match else 0,
                    text=text,
                )
            )
        return reviews


__all__ = ["LISTING_SELECTOR", "NAVIGATION_SELECTOR", "PageParser", "REVIEW_SELECTOR"]
