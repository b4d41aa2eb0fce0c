import sqlite3
from contextlib import contextmanager
from typing import Optional

from .config import settings

def get_connection(db_path: Optional[str] = None):
    """Get a SQLite connection with appropriate settings."""
    conn = sqlite3.connect(db_path or settings.DATABASE_URL)
    conn.row_factory = sqlite3.Row
    return conn

@contextmanager
def get_db(db_path: Optional[str] = None):
    """Context manager for database connections."""
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()

def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Create trend_points table if it doesn't exist
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS trend_points (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            subject TEXT NOT NULL DEFAULT 'default',
            time INTEGER NOT NULL,
            value REAL NOT NULL,
            label TEXT,
            dimensions TEXT
        )
        ''')

        # Create index on subject and time for range queries
        cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_trend_points_subject_time ON trend_points(subject, time)
        ''')

        conn.commit()
