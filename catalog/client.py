import asyncio
import logging
from typing import Optional, List, Dict, Any, Sequence, Tuple

import httpx

from config import CatalogSettings, load_catalog_settings
from catalog.errors import UpstreamNotFound, UpstreamRateLimited, UpstreamUnavailable
from catalog.models import (
    MDAtHome,
    MDChapter,
    MDChapterEntity,
    MDChapterList,
    MDGroupEntity,
    MDGroupList,
    MDManga,
    MDMangaEntity,
    MDMangaList,
    MDStatistics,
    MDStatisticsEntry,
    SeriesMeta,
    parse_upstream,
)

logger = logging.getLogger(__name__)

CONTENT_RATINGS = ('safe', 'suggestive', 'erotica')
FEED_PAGE_LIMIT = 100

Params = List[Tuple[str, Any]]


class MangaDexClient:
    """Thin async client for the MangaDex REST API.

    Every call carries the application User-Agent, is never cached, and runs
    under a per-call timeout. 5xx answers, timeouts and network errors are
    retried with linear backoff; 404 comes back as ``None`` without retrying;
    429 raises ``UpstreamRateLimited`` immediately.
    """

    def __init__(
        self,
        settings: Optional[CatalogSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or load_catalog_settings()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            'Accept': 'application/json',
            'User-Agent': self.settings.user_agent,
            'Cache-Control': 'no-store',
        }

    async def get_json(
        self,
        path: str,
        params: Optional[Params] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> Optional[Any]:
        url = self.settings.api_url + path
        timeout = timeout or self.settings.timeout
        retries = self.settings.retries if retries is None else retries
        attempt = 0

        while True:
            try:
                async with httpx.AsyncClient(timeout=timeout, headers=self._headers(), transport=self._transport) as client:
                    resp = await client.get(url, params=params)
            except httpx.TimeoutException as e:
                if attempt < retries:
                    attempt += 1
                    logger.debug(f"Timeout on {path}, retry {attempt}/{retries}")
                    await asyncio.sleep(self.settings.backoff * attempt)
                    continue
                raise UpstreamUnavailable(f"Timed out calling {path}", detail=str(e)) from e
            except httpx.TransportError as e:
                if attempt < retries:
                    attempt += 1
                    logger.debug(f"Network error on {path} ({e}), retry {attempt}/{retries}")
                    await asyncio.sleep(self.settings.backoff * attempt)
                    continue
                raise UpstreamUnavailable(f"Network error calling {path}", detail=str(e)) from e

            status = resp.status_code
            if status == 404:
                logger.debug(f"404 Not Found: {path}")
                return None
            if status == 429:
                retry_after = resp.headers.get('retry-after')
                logger.warning(f"429 Rate Limit: {path} (retry-after: {retry_after})")
                raise UpstreamRateLimited(f"Rate limited calling {path}", retry_after=retry_after)
            if status >= 500 and attempt < retries:
                attempt += 1
                logger.debug(f"HTTP {status} on {path}, retry {attempt}/{retries}")
                await asyncio.sleep(self.settings.backoff * attempt)
                continue
            if status >= 400:
                logger.warning(f"Upstream HTTP {status} for {path}")
                raise UpstreamUnavailable(f"HTTP {status} calling {path}", detail=resp.text[:200])

            try:
                return resp.json()
            except ValueError as e:
                raise UpstreamUnavailable(f"Invalid JSON from {path}", detail=str(e)) from e

    # --- Series ---

    async def get_series_meta(self, manga_id: str) -> SeriesMeta:
        """Title and one cover for a series. Raises UpstreamNotFound on 404."""
        manga_id = manga_id.lower()
        payload = await self.get_json(f'/manga/{manga_id}', params=[('includes[]', 'cover_art')])
        if payload is None:
            raise UpstreamNotFound(f"Series {manga_id} not found upstream")
        manga = parse_upstream(MDMangaEntity, payload, f'manga {manga_id}').data

        cover_file = manga.cover_file()
        cover_url = f"{self.settings.uploads_url}/covers/{manga_id}/{cover_file}.512.jpg" if cover_file else None
        return SeriesMeta(id=manga_id, title=manga.pick_title(), cover_url=cover_url)

    async def search_series(self, title: str, limit: int = 5) -> List[MDManga]:
        """Relevance-ordered title search."""
        payload = await self.get_json('/manga', params=[
            ('title', title),
            ('limit', limit),
            ('order[relevance]', 'desc'),
        ])
        if payload is None:
            return []
        return parse_upstream(MDMangaList, payload, 'manga search').data

    def series_url(self, manga_id: str) -> str:
        return f"{self.settings.site_url}/title/{manga_id.lower()}"

    # --- Chapters ---

    async def get_feed_page(
        self,
        manga_id: str,
        offset: int,
        limit: int = FEED_PAGE_LIMIT,
        languages: Optional[Sequence[str]] = None,
        include_groups: bool = True,
    ) -> Optional[List[MDChapter]]:
        """One page of the per-series chapter feed, ordered by chapter. None on 404."""
        params: Params = [
            ('limit', min(limit, FEED_PAGE_LIMIT)),
            ('offset', offset),
            ('order[chapter]', 'asc'),
            ('includeFutureUpdates', '0'),
        ]
        params.extend(('contentRating[]', rating) for rating in CONTENT_RATINGS)
        if include_groups:
            params.append(('includes[]', 'scanlation_group'))
        for lang in languages or ():
            params.append(('translatedLanguage[]', lang))

        payload = await self.get_json(f'/manga/{manga_id.lower()}/feed', params=params)
        if payload is None:
            return None
        return parse_upstream(MDChapterList, payload, f'feed {manga_id}').data

    async def get_chapter(self, chapter_id: str) -> Optional[MDChapter]:
        payload = await self.get_json(f'/chapter/{chapter_id}', params=[('includes[]', 'scanlation_group')])
        if payload is None:
            return None
        return parse_upstream(MDChapterEntity, payload, f'chapter {chapter_id}').data

    async def get_at_home(self, chapter_id: str) -> Optional[MDAtHome]:
        """Image-server handshake for a chapter."""
        payload = await self.get_json(f'/at-home/server/{chapter_id}', timeout=self.settings.timeout * 1.5)
        if payload is None:
            return None
        return parse_upstream(MDAtHome, payload, f'at-home {chapter_id}')

    # --- Groups ---

    async def get_group_names(self, group_ids: Sequence[str]) -> Optional[Dict[str, Optional[str]]]:
        """Batch lookup of scanlation group names. None on 404."""
        params: Params = [('limit', len(group_ids))]
        params.extend(('ids[]', gid) for gid in group_ids)
        payload = await self.get_json('/group', params=params)
        if payload is None:
            return None
        groups = parse_upstream(MDGroupList, payload, 'group batch').data
        return {g.id: g.attributes.name for g in groups}

    async def get_group_name(self, group_id: str) -> Optional[str]:
        payload = await self.get_json(f'/group/{group_id}')
        if payload is None:
            return None
        return parse_upstream(MDGroupEntity, payload, f'group {group_id}').data.attributes.name

    # --- Statistics ---

    async def get_statistics(self, manga_ids: Sequence[str]) -> Dict[str, MDStatisticsEntry]:
        params: Params = [('manga[]', mid) for mid in manga_ids]
        payload = await self.get_json('/statistics/manga', params=params)
        if payload is None:
            return {}
        return parse_upstream(MDStatistics, payload, 'statistics').statistics
