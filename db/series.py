import sqlite3
from typing import Optional, Dict, Any
from .connection import get_db_connection


def get_series_by_id(series_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
    """Get a series row by its numeric id"""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute(
            'SELECT id, slug, title, cover_url FROM series WHERE id = ?',
            (series_id,)
        ).fetchone()
        return dict(row) if row else None
    finally:
        if own_conn:
            conn.close()


def get_series_by_slug(slug: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
    """Get a series row by exact slug"""
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute(
            'SELECT id, slug, title, cover_url FROM series WHERE slug = ?',
            (slug,)
        ).fetchone()
        return dict(row) if row else None
    finally:
        if own_conn:
            conn.close()


def slug_exists(slug: str, conn: Optional[sqlite3.Connection] = None) -> bool:
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        row = conn.execute('SELECT 1 FROM series WHERE slug = ? LIMIT 1', (slug,)).fetchone()
        return row is not None
    finally:
        if own_conn:
            conn.close()


def insert_series(slug: str, title: str, cover_url: Optional[str] = None, conn: Optional[sqlite3.Connection] = None) -> int:
    """Insert a series row and return its id.

    When a connection is passed in, the caller owns the transaction and must
    commit; otherwise the insert is committed immediately.
    """
    own_conn = conn is None
    if own_conn:
        conn = get_db_connection()
    try:
        cursor = conn.execute(
            'INSERT INTO series (slug, title, cover_url) VALUES (?, ?, ?)',
            (slug, title, cover_url)
        )
        assert cursor.lastrowid is not None
        if own_conn:
            conn.commit()
        return cursor.lastrowid
    finally:
        if own_conn:
            conn.close()


def delete_series(series_id: int) -> None:
    """Delete a series row (links are left behind and become orphans)"""
    conn = get_db_connection()
    conn.execute('DELETE FROM series WHERE id = ?', (series_id,))
    conn.commit()
    conn.close()
