from typing import Optional, Dict, Any
from .connection import get_db_connection

# Reading progress functions
def get_reading_progress(user_id: str, series_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Get reading progress for a reader. If series_id is None, get all progress keyed by series id."""
    conn = get_db_connection()

    if series_id is not None:
        progress = conn.execute(
            '''SELECT series_id, chapter_id, chapter_label, updated_at
               FROM reading_progress WHERE user_id = ? AND series_id = ?''',
            (user_id, series_id)
        ).fetchone()
        conn.close()
        return dict(progress) if progress else None
    else:
        progress_list = conn.execute(
            '''SELECT series_id, chapter_id, chapter_label, updated_at
               FROM reading_progress WHERE user_id = ? ORDER BY updated_at DESC''',
            (user_id,)
        ).fetchall()
        conn.close()
        return {p['series_id']: dict(p) for p in progress_list}

def upsert_reading_progress(user_id: str, series_id: int, chapter_id: Optional[str], chapter_label: Optional[str]) -> None:
    """Insert or replace the single progress row for (reader, series)"""
    conn = get_db_connection()
    conn.execute(
        '''INSERT INTO reading_progress (user_id, series_id, chapter_id, chapter_label, updated_at)
           VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
           ON CONFLICT(user_id, series_id) DO UPDATE SET
               chapter_id = excluded.chapter_id,
               chapter_label = excluded.chapter_label,
               updated_at = CURRENT_TIMESTAMP''',
        (user_id, series_id, chapter_id or '', chapter_label)
    )
    conn.commit()
    conn.close()
