"""Deduplication of product cards scraped from a single category page."""

from __future__ import annotations

from typing import Iterable

from .records import ProductListing


def dedupe_listings(records: Iterable[ProductListing]) -> list[ProductListing]:
    """Keep the first occurrence of each ``(title, url)`` identity, in input order."""

    seen: set[str] = set()
    unique: list[ProductListing] = []
    for record in records:
        key = record.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def usable_listings(records: Iterable[ProductListing]) -> list[ProductListing]:
    """Drop cards that lack a title or a link."""

    return [record for record in records if record.title and record.url]


__all__ = ["dedupe_listings", "usable_listings"]
