from .errors import (
    CatalogError, InvalidInput, BadSlug, NotFound, SeriesNotFound, ChapterNotFound,
    UpstreamError, UpstreamNotFound, UpstreamUnavailable, UpstreamRateLimited, StorageError
)
from .client import MangaDexClient
from .hydrator import SeriesHydrator
from .resolver import SeriesResolver
from .feed import ChapterFeedFetcher
from .detail import ChapterDetailResolver
from .slugs import encode_chapter_slug, decode_chapter_slug, slugify, parse_chapter_number
