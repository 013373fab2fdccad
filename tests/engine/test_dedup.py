from __future__ import annotations

from catalog_crawler.engine.dedup import dedupe_listings, usable_listings
from catalog_crawler.engine.records import ProductListing


def _listing(title, url, price=None) -> ProductListing:
    return ProductListing(title=title, url=url, price=price)


def test_dedupe_keeps_first_occurrence_in_order() -> None:
    records = [
        _listing("Dune", "/dune", "£4"),
        _listing("Emma", "/emma"),
        _listing("Dune", "/dune", "£9"),
        _listing("Dune", "/dune-2"),
    ]
    result = dedupe_listings(records)
    assert [(r.title, r.url) for r in result] == [("Dune", "/dune"), ("Emma", "/emma"), ("Dune", "/dune-2")]
    assert result[0].price == "£4"


def test_dedupe_is_idempotent_and_never_lengthens() -> None:
    records = [_listing("A", "/a"), _listing("A", "/a"), _listing("B", "/b")]
    once = dedupe_listings(records)
    assert len(once) <= len(records)
    assert dedupe_listings(once) == once


def test_dedupe_empty() -> None:
    assert dedupe_listings([]) == []


def test_usable_listings_drops_incomplete_cards() -> None:
    records = [_listing("A", "/a"), _listing(None, "/b"), _listing("C", None), _listing("", "/d")]
    assert [r.title for r in usable_listings(records)] == ["A"]
