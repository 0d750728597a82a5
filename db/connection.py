import sqlite3
from config import DB_PATH, CATALOG_SOURCE_KEY, LOCAL_SOURCE_KEY

# Schema version for migration tracking
SCHEMA_VERSION = 1

def get_db_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    # Ensure WAL mode is active for this connection
    conn.execute('PRAGMA journal_mode=WAL')
    return conn

def init_db() -> None:
    conn = get_db_connection()

    # Local series records
    conn.execute('''
        CREATE TABLE IF NOT EXISTS series (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT UNIQUE NOT NULL,
            title TEXT,
            cover_url TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # Enumerated upstream sources
    conn.execute('''
        CREATE TABLE IF NOT EXISTS sources (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key TEXT UNIQUE NOT NULL,
            display_name TEXT
        )
    ''')

    # Series <-> upstream id links. external_id is always stored lowercase.
    # No foreign key on series_id: a link can outlive its series row and the
    # resolver/hydrator clean such orphans up explicitly.
    conn.execute('''
        CREATE TABLE IF NOT EXISTS series_sources (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            series_id INTEGER NOT NULL,
            source_id INTEGER NOT NULL,
            external_id TEXT NOT NULL,
            external_url TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (source_id) REFERENCES sources(id),
            UNIQUE(series_id, source_id),
            UNIQUE(source_id, external_id)
        )
    ''')
    conn.execute('CREATE INDEX IF NOT EXISTS idx_series_sources_external ON series_sources(source_id, external_id)')

    # Per-reader progress, keyed by the numeric series id
    conn.execute('''
        CREATE TABLE IF NOT EXISTS reading_progress (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            series_id INTEGER NOT NULL,
            chapter_id TEXT,
            chapter_label TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(user_id, series_id)
        )
    ''')

    for key, display_name in ((CATALOG_SOURCE_KEY, 'MangaDex'), (LOCAL_SOURCE_KEY, 'Local')):
        conn.execute(
            'INSERT OR IGNORE INTO sources (key, display_name) VALUES (?, ?)',
            (key, display_name)
        )

    conn.execute(f'PRAGMA user_version = {SCHEMA_VERSION}')
    conn.commit()
    conn.close()
