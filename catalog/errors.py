"""Error taxonomy for the catalog core.

"Not found" results of plain lookups are modeled as ``None`` / empty lists.
These exceptions cover everything else and carry the HTTP status the request
boundary maps them to.
"""

from typing import Optional


class CatalogError(Exception):
    http_status = 500

    def __init__(self, message: str = '', detail: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.detail = detail


class InvalidInput(CatalogError):
    """Malformed UUID, key or slug supplied by the caller."""
    http_status = 400


class BadSlug(InvalidInput):
    """Canonical chapter slug does not match the slug grammar."""


class NotFound(CatalogError):
    http_status = 404


class SeriesNotFound(NotFound):
    pass


class ChapterNotFound(NotFound):
    pass


class UpstreamError(CatalogError):
    """Any failure talking to the upstream catalog."""
    http_status = 500


class UpstreamNotFound(UpstreamError):
    http_status = 404


class UpstreamUnavailable(UpstreamError):
    """Network error, timeout, non-2xx status or malformed payload, after retries."""
    http_status = 502


class UpstreamRateLimited(UpstreamError):
    """The catalog answered 429. Never retried."""
    http_status = 429

    def __init__(self, message: str = '', detail: Optional[str] = None, retry_after: Optional[str] = None):
        super().__init__(message, detail)
        self.retry_after = retry_after


class StorageError(CatalogError):
    """The local database call itself failed."""
    http_status = 500
