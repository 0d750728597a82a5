import logging
import sqlite3
from typing import Optional, Dict, Any

from catalog.errors import SeriesNotFound, StorageError, UpstreamError
from catalog.models import ResolvedSeries
from catalog.resolver import SeriesResolver
from catalog.slugs import is_uuid, parse_chapter_number
from db.progress import get_reading_progress, upsert_reading_progress

logger = logging.getLogger(__name__)


def _position_number(chapter_label: Optional[str], chapter_id: Optional[str]) -> Optional[float]:
    return parse_chapter_number(chapter_label or chapter_id or '')


async def _series_for_progress(resolver: SeriesResolver, series_key: str) -> ResolvedSeries:
    series = await resolver.resolve(series_key)
    if series is None and is_uuid(series_key):
        try:
            series = await resolver.hydrator.hydrate(series_key)
        except UpstreamError as e:
            logger.warning(f"Hydration for progress failed for {series_key}: {e.message}")
    if series is None:
        raise SeriesNotFound(f"Could not resolve series {series_key!r}")
    return series


async def _chapter_label(resolver: SeriesResolver, chapter_id: str) -> Optional[str]:
    """Label of an upstream chapter, or None when it cannot be fetched."""
    try:
        chapter = await resolver.hydrator.client.get_chapter(chapter_id)
    except UpstreamError as e:
        logger.warning(f"Label lookup for chapter {chapter_id} failed: {e.message}")
        return None
    if chapter is None or not chapter.attributes.chapter:
        return None
    return chapter.attributes.chapter.strip() or None


async def save_progress(
    resolver: SeriesResolver,
    user_id: str,
    series_key: str,
    chapter_id: Optional[str] = None,
    chapter_label: Optional[str] = None,
    force: bool = False,
) -> Dict[str, Any]:
    """Record the reader's position, keyed by the canonical numeric series id.

    A bare MangaDex id not known locally is imported first. When no label is
    given for a MangaDex chapter id, the label is fetched upstream.

    Forward-only unless ``force``: when both the stored and the new position
    parse as chapter numbers and the new one is not greater, nothing is written.
    """
    series = await _series_for_progress(resolver, series_key)

    if not chapter_label and chapter_id and is_uuid(chapter_id):
        chapter_label = await _chapter_label(resolver, chapter_id)

    try:
        previous = get_reading_progress(user_id, series.id)
        if not force and previous and (chapter_id or chapter_label):
            old_n = _position_number(previous.get('chapter_label'), previous.get('chapter_id'))
            new_n = _position_number(chapter_label, chapter_id)
            if old_n is not None and new_n is not None and new_n <= old_n:
                logger.info(f"Ignored progress update series={series.id} old={old_n} new={new_n}")
                return {'ok': True, 'series_id': series.id, 'ignored': 'backward_or_same'}

        upsert_reading_progress(user_id, series.id, chapter_id, chapter_label)
    except sqlite3.Error as e:
        raise StorageError("Database error while saving progress", detail=str(e)) from e

    return {'ok': True, 'series_id': series.id}


def get_progress(user_id: str) -> Dict[str, Dict[str, Any]]:
    """All progress rows of a reader keyed by numeric series id (as string)."""
    try:
        rows = get_reading_progress(user_id) or {}
    except sqlite3.Error as e:
        raise StorageError("Database error while reading progress", detail=str(e)) from e
    return {
        str(series_id): {
            'chapter_id': row.get('chapter_id') or '',
            'chapter': row.get('chapter_label'),
            'updated_at': row.get('updated_at'),
        }
        for series_id, row in rows.items()
    }


async def get_last_read(resolver: SeriesResolver, user_id: str, series_key: str) -> Dict[str, Any]:
    """Last-read position of one series; every field is None when there is none."""
    empty = {'chapter_id': None, 'chapter': None, 'updated_at': None}
    series = await resolver.resolve(series_key)
    if series is None:
        return empty
    try:
        row = get_reading_progress(user_id, series.id)
    except sqlite3.Error as e:
        raise StorageError("Database error while reading progress", detail=str(e)) from e
    if not row:
        return empty
    return {
        'chapter_id': row.get('chapter_id') or None,
        'chapter': row.get('chapter_label'),
        'updated_at': row.get('updated_at'),
    }
