from __future__ import annotations

import pytest

from catalog_crawler.engine.rate_limiter import DomainRateLimiter, domain_of
from catalog_crawler.errors import RateLimitExceeded


def test_ceiling_then_reject_then_reset(clock) -> None:
    limiter = DomainRateLimiter(max_requests=2, window_seconds=1.0, clock=clock)
    limiter.admit("books.example.com")
    limiter.admit("books.example.com")
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.admit("books.example.com")
    assert excinfo.value.domain == "books.example.com"
    assert excinfo.value.retry_after == pytest.approx(1.0)
    assert excinfo.value.retriable is True

    clock.advance(1.0)
    limiter.admit("books.example.com")
    assert limiter.snapshot("books.example.com").count == 1


def test_rejection_does_not_consume_budget(clock) -> None:
    limiter = DomainRateLimiter(max_requests=1, window_seconds=10, clock=clock)
    limiter.admit("a.example")
    for _ in range(5):
        with pytest.raises(RateLimitExceeded):
            limiter.admit("a.example")
    assert limiter.snapshot("a.example").count == 1


def test_domains_are_independent(clock) -> None:
    limiter = DomainRateLimiter(max_requests=1, window_seconds=10, clock=clock)
    limiter.admit("a.example")
    limiter.admit("b.example")
    with pytest.raises(RateLimitExceeded):
        limiter.admit("a.example")


def test_burst_around_window_boundary(clock) -> None:
    limiter = DomainRateLimiter(max_requests=3, window_seconds=1.0, clock=clock)
    limiter.admit("a.example")
    clock.advance(0.99)
    limiter.admit("a.example")
    limiter.admit("a.example")
    clock.advance(0.02)
    for _ in range(3):
        limiter.admit("a.example")


def test_domain_of_lowercases_host() -> None:
    assert domain_of("https://Books.Example.com:443/p/1?x=1") == "books.example.com"
