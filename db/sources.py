import sqlite3
from typing import Optional, Dict, Any, List
from .connection import get_db_connection


def get_source_id(key: str, conn: Optional[sqlite3.Connection] = None) -> Optional[int]:
    """Get the id of a source by key, or None if the source is not registered"""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute('SELECT id FROM sources WHERE key = ?', (key,)).fetchone()
        return int(row['id']) if row else None
    finally:
        if own_conn:
            conn.close()


def get_or_create_source_id(key: str, display_name: Optional[str] = None, conn: Optional[sqlite3.Connection] = None) -> int:
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute('SELECT id FROM sources WHERE key = ?', (key,)).fetchone()
        if row:
            return int(row['id'])
        conn.execute(
            'INSERT OR IGNORE INTO sources (key, display_name) VALUES (?, ?)',
            (key, display_name or key)
        )
        conn.commit()
        row = conn.execute('SELECT id FROM sources WHERE key = ?', (key,)).fetchone()
        return int(row['id'])
    finally:
        if own_conn:
            conn.close()


def get_external_id(series_id: int, source_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[str]:
    """Get the upstream id linked to a series for one source"""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute(
            'SELECT external_id FROM series_sources WHERE series_id = ? AND source_id = ?',
            (series_id, source_id)
        ).fetchone()
        return row['external_id'] if row else None
    finally:
        if own_conn:
            conn.close()


def find_link_by_external_id(external_id: str, source_id: Optional[int] = None, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
    """Find a link by upstream id, restricted to one source when source_id is given"""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        if source_id is not None:
            row = conn.execute(
                '''SELECT series_id, source_id, external_id, external_url FROM series_sources
                   WHERE source_id = ? AND external_id = ? LIMIT 1''',
                (source_id, external_id.lower())
            ).fetchone()
        else:
            row = conn.execute(
                '''SELECT series_id, source_id, external_id, external_url FROM series_sources
                   WHERE external_id = ? ORDER BY id LIMIT 1''',
                (external_id.lower(),)
            ).fetchone()
        return dict(row) if row else None
    finally:
        if own_conn:
            conn.close()


def insert_source_link(series_id: int, source_id: int, external_id: str, external_url: Optional[str] = None,
                       conn: Optional[sqlite3.Connection] = None) -> None:
    """Insert a series link. Raises sqlite3.IntegrityError when either uniqueness key is taken.

    When a connection is passed in, the caller owns the transaction.
    """
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        conn.execute(
            '''INSERT INTO series_sources (series_id, source_id, external_id, external_url)
               VALUES (?, ?, ?, ?)''',
            (series_id, source_id, external_id.lower(), external_url)
        )
        if own_conn:
            conn.commit()
    except sqlite3.IntegrityError:
        if own_conn:
            conn.rollback()
        raise
    finally:
        if own_conn:
            conn.close()


def delete_source_link(source_id: int, external_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
    """Delete the link for (source, external id). Returns the number of rows removed."""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        cursor = conn.execute(
            'DELETE FROM series_sources WHERE source_id = ? AND external_id = ?',
            (source_id, external_id.lower())
        )
        conn.commit()
        return cursor.rowcount
    finally:
        if own_conn:
            conn.close()


def get_slugs_for_external_ids(source_id: int, external_ids: List[str]) -> Dict[str, str]:
    """Map lowercase upstream ids to local slugs for every linked, still-existing series"""
    if not external_ids:
        return {}
    lowered = [e.lower() for e in external_ids]
    placeholders = ','.join('?' * len(lowered))
    conn = get_db_connection()
    rows = conn.execute(
        f'''SELECT ss.external_id, s.slug FROM series_sources ss
            JOIN series s ON s.id = ss.series_id
            WHERE ss.source_id = ? AND ss.external_id IN ({placeholders})''',
        [source_id, *lowered]
    ).fetchall()
    conn.close()
    return {row['external_id']: row['slug'] for row in rows}
