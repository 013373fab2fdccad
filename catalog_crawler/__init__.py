"""Fetch orchestration for catalog scraping: cache, rate limits, jobs and batches."""

__version__ = "0.1.0"

__all__ = ["__version__"]
