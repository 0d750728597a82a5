import asyncio
import logging
from datetime import datetime
from typing import Optional, List, Dict, Sequence

from catalog.client import FEED_PAGE_LIMIT, MangaDexClient
from catalog.errors import UpstreamError, UpstreamRateLimited
from catalog.models import ONESHOT_LABEL, ChapterList, ChapterRow, MDChapter
from catalog.resolver import SeriesResolver
from catalog.slugs import chapter_sort_number, encode_chapter_slug, is_uuid, short8

logger = logging.getLogger(__name__)

MIN_CEILING = 10
MAX_CEILING = 1000


def timestamp_ms(value: Optional[str]) -> float:
    """Epoch milliseconds of an ISO timestamp; 0 when missing or unparsable."""
    if not value:
        return 0
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).timestamp() * 1000
    except ValueError:
        return 0


def chapter_order_key(chapter: MDChapter):
    """Numeric label ascending, then earliest best timestamp first."""
    return (chapter_sort_number(chapter.attributes.chapter), timestamp_ms(chapter.best_timestamp))


def to_chapter_row(chapter: MDChapter, group_name: Optional[str] = None) -> ChapterRow:
    group_id = chapter.group_id
    group_short = short8(group_id)
    if group_id and not group_name:
        group_name = f'Group {group_short}'
    return ChapterRow(
        id=chapter.id,
        chapter=chapter.attributes.chapter if chapter.attributes.chapter is not None else ONESHOT_LABEL,
        title=chapter.attributes.title or '',
        pages=chapter.attributes.pages or 0,
        publish_at=chapter.best_timestamp,
        lang=chapter.lang,
        group_id=group_id,
        group_short=group_short,
        group_name=group_name,
        canonical_slug=encode_chapter_slug(group_id, chapter.attributes.chapter, chapter.lang),
    )


class ChapterFeedFetcher:
    """Builds the ordered chapter list of a series from the upstream feed.

    Upstream trouble never escapes from here: rate limits, timeouts and
    missing feeds degrade to partial or empty results.
    """

    def __init__(self, client: MangaDexClient, resolver: SeriesResolver):
        self.client = client
        self.resolver = resolver
        self.settings = client.settings

    async def resolve_manga_id(self, key: str) -> Optional[str]:
        key = (key or '').strip()
        if not key:
            return None
        if is_uuid(key):
            return key.lower()
        resolved = await self.resolver.resolve(key)
        if resolved and resolved.external_id and is_uuid(resolved.external_id):
            return resolved.external_id.lower()
        return None

    async def list_chapters(
        self,
        key: str,
        language: Optional[str] = 'any',
        group: Optional[str] = 'all',
        limit: Optional[int] = 100,
    ) -> ChapterList:
        manga_id = await self.resolve_manga_id(key)
        if not manga_id:
            return ChapterList()

        chapters = await self._fetch_feed(manga_id, limit)

        group_ids = sorted({c.group_id for c in chapters if c.group_id})
        group_names = await self.fetch_group_names(group_ids)

        available_langs = sorted({c.lang for c in chapters if c.lang})

        filtered = chapters
        if language and language.lower() != 'any':
            wanted = {part.strip().lower() for part in language.split(',') if part.strip()}
            filtered = [c for c in filtered if c.lang in wanted]
        if group and group.lower() != 'all':
            filtered = [c for c in filtered if (c.group_id or '').lower() == group.lower()]

        filtered = sorted(filtered, key=chapter_order_key)
        items = [to_chapter_row(c, group_names.get(c.group_id) if c.group_id else None) for c in filtered]
        return ChapterList(items=items, available_langs=available_langs)

    async def _fetch_feed(self, manga_id: str, limit: Optional[int]) -> List[MDChapter]:
        ceiling = min(max(limit or 100, MIN_CEILING), MAX_CEILING)
        page_size = min(ceiling, FEED_PAGE_LIMIT)
        offset = 0
        collected: List[MDChapter] = []

        for _ in range(self.settings.feed_max_pages):
            try:
                page = await self.client.get_feed_page(manga_id, offset, page_size)
            except UpstreamRateLimited:
                logger.warning(f"Feed for {manga_id} rate limited after {len(collected)} chapters, returning partial list")
                break
            except UpstreamError as e:
                logger.warning(f"Feed for {manga_id} failed at offset {offset}: {e.message}")
                break
            if page is None:
                break

            collected.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
            if len(collected) >= ceiling:
                break

        return collected

    async def fetch_group_names(self, group_ids: Sequence[str]) -> Dict[str, str]:
        """Resolve scanlation group names, batch first and then one id at a time.

        Ids that still have no name are simply absent from the result.
        """
        names: Dict[str, str] = {}
        unique = list(dict.fromkeys(g for g in group_ids if g))
        if not unique:
            return names

        batch_size = self.settings.group_batch_size
        batches_ok = True
        for i in range(0, len(unique), batch_size):
            chunk = unique[i:i + batch_size]
            try:
                found = await self.client.get_group_names(chunk)
            except UpstreamRateLimited:
                logger.warning("Group lookup rate limited, skipping per-id fallback")
                return names
            except UpstreamError as e:
                logger.warning(f"Group batch lookup failed: {e.message}")
                found = None
            if found is None:
                batches_ok = False
                break
            for gid, name in found.items():
                names[gid] = name or f'Group {short8(gid)}'

        if batches_ok:
            return names

        missing = [gid for gid in unique if gid not in names]
        width = max(1, self.settings.fanout_width)
        for i in range(0, len(missing), width):
            wave = missing[i:i + width]
            results = await asyncio.gather(
                *(self.client.get_group_name(gid) for gid in wave),
                return_exceptions=True,
            )
            for gid, result in zip(wave, results):
                if isinstance(result, UpstreamRateLimited):
                    logger.warning("Group lookup rate limited during per-id fallback")
                    return names
                if isinstance(result, UpstreamError):
                    logger.debug(f"Group {gid} lookup failed: {result.message}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                if result:
                    names[gid] = result
        return names

    async def get_chapter(self, chapter_id: str) -> ChapterList:
        """Single chapter (with its group) by upstream id; empty on any failure."""
        chapter_id = (chapter_id or '').strip()
        if not is_uuid(chapter_id):
            return ChapterList()
        try:
            chapter = await self.client.get_chapter(chapter_id)
        except UpstreamError as e:
            logger.warning(f"Chapter {chapter_id} lookup failed: {e.message}")
            return ChapterList()
        if chapter is None:
            return ChapterList()

        names = await self.fetch_group_names([chapter.group_id]) if chapter.group_id else {}
        row = to_chapter_row(chapter, names.get(chapter.group_id) if chapter.group_id else None)
        return ChapterList(items=[row], available_langs=[])
