"""
Error taxonomy for the seed pipeline.

Only ``ConfigurationError`` and ``NoSourcesAvailable`` abort a run; every other
error is caught at the source or item level, logged, and folded into metrics.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SeedError(Exception):
    """Base class for seed pipeline errors."""


class ConfigurationError(SeedError):
    """Fatal pre-flight error, e.g. missing store DSN outside dry-run."""


class NoSourcesAvailable(SeedError):
    """Fatal pre-flight error: registry resolution produced no usable sources."""


class InvalidSourceEntry(SeedError):
    """A bootstrap/discovery record without id, name or endpoint."""

    def __init__(self, message: str, entry: Any = None):
        super().__init__(message)
        self.entry = entry


class FetchFailure(SeedError):
    """Network, timeout or HTTP error after all retry attempts."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.attempts = attempts


class ItemProcessingFailure(SeedError):
    """Normalization, hashing or upsert failure for one article or nested source."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class UpsertFailure(SeedError):
    """A bulk source upsert could not be written."""
