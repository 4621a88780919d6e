"""Exception types raised inside the aggregation pipeline.

Only :class:`AggregationError` is meant to escape the orchestrator; the
feed-level errors are raised and caught inside :mod:`finfeed.feeds`.
"""

from __future__ import annotations

from typing import Dict, Optional


class FinfeedError(Exception):
    """Base class for finfeed errors."""


class FeedFetchError(FinfeedError):
    """A single fetch attempt against a feed failed.

    ``unrecoverable`` marks failures that retrying cannot fix (DNS, TLS,
    HTTP 401/403/404, connection refused).
    """

    unrecoverable: bool = False

    def __init__(self, message: str, *, unrecoverable: Optional[bool] = None):
        super().__init__(message)
        if unrecoverable is not None:
            self.unrecoverable = unrecoverable


class FeedHTTPError(FeedFetchError):
    """Non-200 response from a feed server."""

    def __init__(self, status: int, url: str = ""):
        self.status = int(status)
        self.url = url
        super().__init__(
            f"HTTP {self.status} for {url}" if url else f"HTTP {self.status}",
            unrecoverable=self.status in (401, 403, 404),
        )


class MalformedFeedError(FeedFetchError):
    """The document could not be parsed, even after cleanup."""


class EmptyFeedError(FeedFetchError):
    """The document parsed but contained no items."""


class AggregationError(FinfeedError):
    """No feed produced any article during a run.

    ``failures`` maps source name to a short failure category so callers
    can decide how to report the outage.
    """

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.failures: Dict[str, str] = dict(failures or {})
