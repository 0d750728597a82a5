from .connection import get_db_connection, init_db
from .series import get_series_by_id, get_series_by_slug, slug_exists, insert_series, delete_series
from .sources import (
    get_source_id, get_or_create_source_id, get_external_id, find_link_by_external_id,
    insert_source_link, delete_source_link, get_slugs_for_external_ids
)
from .progress import get_reading_progress, upsert_reading_progress
