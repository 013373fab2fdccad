"""Terminal feedback helpers."""

from .progress import BatchProgress, ProgressReporter, ProgressState

__all__ = ["BatchProgress", "ProgressReporter", "ProgressState"]
