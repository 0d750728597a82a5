import logging
import re
import sqlite3
from typing import Optional, List, Dict, Any

from catalog.errors import CatalogError, StorageError
from catalog.hydrator import SeriesHydrator
from catalog.models import ResolvedSeries
from catalog.slugs import is_uuid
from db.series import get_series_by_id, get_series_by_slug
from db.sources import (
    find_link_by_external_id,
    get_external_id,
    get_slugs_for_external_ids,
    get_source_id,
)

logger = logging.getLogger(__name__)

NUMERIC_KEY_RE = re.compile(r'^\d+$')
SLUG_MAP_LIMIT = 100
MAX_SERIES_ID = 2 ** 63 - 1


class SeriesResolver:
    """Maps a numeric id, slug or upstream UUID to the local series record."""

    def __init__(self, hydrator: SeriesHydrator):
        self.hydrator = hydrator
        self.settings = hydrator.settings

    async def resolve(self, key, source_key: Optional[str] = None) -> Optional[ResolvedSeries]:
        """Resolve ``key`` to ``ResolvedSeries`` or None.

        A digit key is looked up by numeric id only; a miss is final. Other
        keys try the slug (lowercased), then the upstream id (lowercased).
        Only the id and slug paths heal a missing catalog link; the
        upstream-id path never creates anything.
        """
        key = str(key if key is not None else '').strip()
        if not key:
            return None

        try:
            if NUMERIC_KEY_RE.match(key):
                series_id = int(key)
                # Ids past the SQLite INTEGER range cannot exist
                if series_id > MAX_SERIES_ID:
                    return None
                series = get_series_by_id(series_id)
                if series is None:
                    return None
            else:
                series = get_series_by_slug(key.lower())
            if series is not None:
                external_id = await self._catalog_link(series)
                return ResolvedSeries(id=series['id'], slug=series['slug'], external_id=external_id)

            key_lower = key.lower()
            source_id = get_source_id(source_key or self.settings.source_key)
            link = find_link_by_external_id(key_lower, source_id)
            if link:
                linked = get_series_by_id(link['series_id'])
                if linked:
                    return ResolvedSeries(id=linked['id'], slug=linked['slug'], external_id=key_lower)
                logger.warning(f"Link {key_lower} points at missing series {link['series_id']}")
        except sqlite3.Error as e:
            raise StorageError(f"Database error while resolving {key!r}", detail=str(e)) from e

        return None

    async def _catalog_link(self, series: Dict[str, Any]) -> Optional[str]:
        source_id = get_source_id(self.settings.source_key)
        if source_id is None:
            return None
        external_id = get_external_id(series['id'], source_id)
        if external_id:
            return external_id

        # Healing never decides the outcome of the lookup itself
        try:
            return await self.hydrator.heal_missing_source_link(series['id'], series.get('title') or series['slug'])
        except (CatalogError, sqlite3.Error) as e:
            logger.error(f"Auto-heal failed for series {series['id']}: {e}")
            return None

    async def map_external_ids(self, ids: List[str], hydrate: bool = False) -> Dict[str, Any]:
        """Map upstream ids to local slugs, keyed by the caller's spelling.

        With ``hydrate`` set, ids not yet known locally are imported one by
        one; per-id failures are collected instead of raised.
        """
        originals = [i.strip() for i in ids if i and i.strip()]
        lowered_unique: List[str] = []
        for original in originals:
            lowered = original.lower()
            if lowered not in lowered_unique:
                lowered_unique.append(lowered)
        lowered_unique = lowered_unique[:SLUG_MAP_LIMIT]

        found: Dict[str, str] = {}
        errors: List[Dict[str, str]] = []
        try:
            source_id = get_source_id(self.settings.source_key)
            if source_id is not None and lowered_unique:
                found.update(get_slugs_for_external_ids(source_id, lowered_unique))
        except sqlite3.Error as e:
            raise StorageError("Database error while mapping upstream ids", detail=str(e)) from e

        if hydrate:
            for lowered in lowered_unique:
                if lowered in found or not is_uuid(lowered):
                    continue
                try:
                    record = await self.hydrator.hydrate(lowered)
                except CatalogError as e:
                    logger.warning(f"slug-map hydrate failed for {lowered}: {e.message}")
                    errors.append({'id': lowered, 'error': e.message})
                    continue
                found[lowered] = record.slug

        mapping = {original: found[original.lower()] for original in originals if original.lower() in found}
        return {'map': mapping, 'errors': errors}
