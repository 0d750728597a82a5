import sqlite3
from typing import Optional, Dict

from logger import logger
from catalog.client import MangaDexClient
from catalog.errors import InvalidInput, StorageError, UpstreamError
from catalog.models import ResolvedSeries
from catalog.slugs import is_uuid, slugify, slug_candidates
from db.connection import get_db_connection
from db.series import get_series_by_id, insert_series, slug_exists
from db.sources import (
    delete_source_link,
    find_link_by_external_id,
    get_or_create_source_id,
    insert_source_link,
)

# Slug allocation can lose a race to a concurrent insert of the same title
SLUG_RACE_ATTEMPTS = 3


class SeriesHydrator:
    """Imports upstream series into local storage and repairs missing links."""

    def __init__(self, client: MangaDexClient):
        self.client = client
        self.settings = client.settings
        self.heal_stats: Dict[str, int] = {'attempted': 0, 'linked': 0, 'no_match': 0, 'failed': 0}

    async def hydrate(self, uuid: str) -> ResolvedSeries:
        """Make sure the upstream series exists locally and return its record.

        Idempotent: a second call for the same uuid returns the same id/slug.
        Series and link are written in one transaction; when a concurrent
        hydration of the same uuid commits first, its record is returned.
        """
        if not is_uuid(uuid):
            raise InvalidInput(f"Not a valid series UUID: {uuid!r}")
        uuid_lower = uuid.strip().lower()

        conn = get_db_connection()
        try:
            source_id = get_or_create_source_id(self.settings.source_key, 'MangaDex', conn=conn)

            existing = self._existing_record(source_id, uuid_lower, conn)
            if existing:
                return existing

            meta = await self.client.get_series_meta(uuid_lower)
            external_url = self.client.series_url(uuid_lower)

            for _ in range(SLUG_RACE_ATTEMPTS):
                slug = self._allocate_slug(slugify(meta.title), conn)
                try:
                    series_id = insert_series(slug, meta.title, meta.cover_url, conn=conn)
                    insert_source_link(series_id, source_id, uuid_lower, external_url, conn=conn)
                    conn.commit()
                except sqlite3.IntegrityError as e:
                    conn.rollback()
                    winner = self._existing_record(source_id, uuid_lower, conn)
                    if winner:
                        logger.info(f"Concurrent hydration of {uuid_lower} won the race, using series {winner.id}")
                        return winner
                    logger.warning(f"Slug {slug!r} taken while hydrating {uuid_lower} ({e}), retrying")
                    continue

                logger.info(f"Hydrated {uuid_lower} as series {series_id} ({slug})")
                return ResolvedSeries(id=series_id, slug=slug, external_id=uuid_lower)

            raise StorageError(f"Could not allocate a slug for {uuid_lower}")
        except sqlite3.Error as e:
            raise StorageError(f"Database error while hydrating {uuid_lower}", detail=str(e)) from e
        finally:
            conn.close()

    def _existing_record(self, source_id: int, uuid_lower: str, conn) -> Optional[ResolvedSeries]:
        link = find_link_by_external_id(uuid_lower, source_id, conn=conn)
        if not link:
            return None
        series = get_series_by_id(link['series_id'], conn=conn)
        if series:
            return ResolvedSeries(id=series['id'], slug=series['slug'], external_id=uuid_lower)

        logger.warning(f"Orphan source link for {uuid_lower} -> series {link['series_id']}, cleaning up")
        delete_source_link(source_id, uuid_lower, conn=conn)
        return None

    def _allocate_slug(self, base: str, conn) -> str:
        for candidate in slug_candidates(base):
            if not slug_exists(candidate, conn=conn):
                return candidate
        # slug_candidates ends with a timestamp suffix; reaching here means even that was taken
        raise StorageError(f"No free slug for base {base!r}")

    async def heal_missing_source_link(self, series_id: int, title: str) -> Optional[str]:
        """Find and store the upstream id of a local series that has none.

        Best-effort: any failure is logged and reported as None.
        """
        self.heal_stats['attempted'] += 1
        try:
            candidates = await self.client.search_series(title)
        except UpstreamError as e:
            self.heal_stats['failed'] += 1
            logger.warning(f"heal outcome=failed stage=search series_id={series_id} title={title!r} error={e.message}")
            return None

        if not candidates:
            self.heal_stats['no_match'] += 1
            logger.info(f"heal outcome=no_match series_id={series_id} title={title!r}")
            return None

        external_id = candidates[0].id.lower()
        try:
            source_id = get_or_create_source_id(self.settings.source_key, 'MangaDex')
            insert_source_link(series_id, source_id, external_id, self.client.series_url(external_id))
        except sqlite3.Error as e:
            self.heal_stats['failed'] += 1
            logger.warning(f"heal outcome=failed stage=insert series_id={series_id} external_id={external_id} error={e}")
            return None

        self.heal_stats['linked'] += 1
        logger.info(f"heal outcome=linked series_id={series_id} external_id={external_id} title={title!r}")
        return external_id
