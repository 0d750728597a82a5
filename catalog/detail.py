import logging
from typing import Optional, List, Tuple

from catalog.client import FEED_PAGE_LIMIT, MangaDexClient
from catalog.errors import (
    BadSlug,
    ChapterNotFound,
    InvalidInput,
    SeriesNotFound,
    UpstreamNotFound,
)
from catalog.feed import timestamp_ms
from catalog.hydrator import SeriesHydrator
from catalog.models import ChapterDetail, DecodedSlug
from catalog.resolver import SeriesResolver
from catalog.slugs import decode_chapter_slug, is_uuid, normalize_label

logger = logging.getLogger(__name__)


class ChapterDetailResolver:
    """Turns a chapter id, or a series key plus canonical chapter slug, into page URLs."""

    def __init__(self, client: MangaDexClient, resolver: SeriesResolver, hydrator: SeriesHydrator):
        self.client = client
        self.resolver = resolver
        self.hydrator = hydrator
        self.settings = client.settings

    async def resolve_detail(
        self,
        chapter_id: Optional[str] = None,
        series_key: Optional[str] = None,
        chapter_slug: Optional[str] = None,
        save_data: bool = False,
    ) -> ChapterDetail:
        chapter_id = (chapter_id or '').strip()
        if chapter_id:
            pages = await self.get_chapter_pages(chapter_id, save_data)
            return ChapterDetail(pages=pages)

        series_key = (series_key or '').strip()
        chapter_slug = (chapter_slug or '').strip()
        if not series_key or not chapter_slug:
            raise InvalidInput("Either a chapter id or both series and chapter slug are required")

        decoded = decode_chapter_slug(chapter_slug)
        if decoded is None:
            raise BadSlug(f"Invalid chapter slug: {chapter_slug!r}")

        manga_id = await self._series_upstream_id(series_key)
        resolved_id = await self.find_chapter_id(manga_id, decoded)
        if not resolved_id:
            raise ChapterNotFound(f"No {decoded.lang} chapter {decoded.label!r} for series {series_key!r}")

        pages = await self.get_chapter_pages(resolved_id, save_data)
        return ChapterDetail(pages=pages, resolved_chapter_id=resolved_id)

    async def _series_upstream_id(self, series_key: str) -> str:
        series = await self.resolver.resolve(series_key)
        if series is None and is_uuid(series_key):
            try:
                series = await self.hydrator.hydrate(series_key)
            except UpstreamNotFound as e:
                raise SeriesNotFound(f"Series {series_key!r} not found upstream") from e
        if series is None:
            raise SeriesNotFound(f"Series {series_key!r} not found")
        if not series.external_id:
            raise SeriesNotFound(f"Series {series_key!r} has no MangaDex id")
        return series.external_id

    async def find_chapter_id(self, manga_id: str, decoded: DecodedSlug) -> Optional[str]:
        """Scan the language-filtered feed for the decoded label.

        Among several uploads of the same label the earliest published one
        wins. The group prefix in the slug is not used to pick a winner.
        """
        label = normalize_label(decoded.label).lower()
        best: Optional[Tuple[float, str]] = None
        offset = 0

        for _ in range(self.settings.feed_max_pages):
            page = await self.client.get_feed_page(
                manga_id, offset, FEED_PAGE_LIMIT, languages=[decoded.lang], include_groups=False,
            )
            if page is None:
                break
            for chapter in page:
                if normalize_label(chapter.attributes.chapter).lower() != label or chapter.lang != decoded.lang:
                    continue
                ts = timestamp_ms(chapter.best_timestamp)
                if best is None or ts < best[0]:
                    best = (ts, chapter.id)
            if len(page) < FEED_PAGE_LIMIT:
                break
            offset += FEED_PAGE_LIMIT

        return best[1] if best else None

    async def get_chapter_pages(self, chapter_id: str, save_data: bool = False) -> List[str]:
        """Page image URLs from the image-server handshake."""
        if not is_uuid(chapter_id):
            raise InvalidInput(f"Not a valid chapter id: {chapter_id!r}")
        at_home = await self.client.get_at_home(chapter_id.lower())
        if at_home is None:
            raise ChapterNotFound(f"Chapter {chapter_id} not found upstream")

        chapter = at_home.chapter
        if save_data and chapter.dataSaver:
            return [f"{at_home.baseUrl}/data-saver/{chapter.hash}/{name}" for name in chapter.dataSaver]
        return [f"{at_home.baseUrl}/data/{chapter.hash}/{name}" for name in chapter.data]
