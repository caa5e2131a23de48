"""
Refresh bookkeeping for repocache.

One refresh_meta row per query key records when it was last fetched and
with which paging cursor. The row is written inside the same transaction
as the batch it describes.
"""

from typing import Optional, Dict, Any

from .connection import Database


def record_refresh(
    db: Database,
    query_key: str,
    fetched_at: str,
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    total_count: Optional[int] = None,
) -> None:
    """Insert or replace the refresh row for a query key."""
    db.execute(
        """INSERT INTO refresh_meta (query_key, last_fetched_at, page, per_page, total_count)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT (query_key) DO UPDATE SET
               last_fetched_at = excluded.last_fetched_at,
               page = excluded.page,
               per_page = excluded.per_page,
               total_count = excluded.total_count""",
        (query_key, fetched_at, page, per_page, total_count)
    )


def get_refresh_meta(db: Database, query_key: str) -> Optional[Dict[str, Any]]:
    """Get the refresh row for a query key."""
    db.execute("SELECT * FROM refresh_meta WHERE query_key = ?", (query_key,))
    row = db.fetchone()
    return dict(row) if row else None


def get_all_refresh_meta(db: Database) -> Dict[str, str]:
    """Map of query key -> last fetched ISO timestamp."""
    db.execute("SELECT query_key, last_fetched_at FROM refresh_meta ORDER BY query_key")
    return {row['query_key']: row['last_fetched_at'] for row in db.fetchall()}


def get_latest_refresh(db: Database) -> Optional[str]:
    """Most recent refresh timestamp across all query keys."""
    db.execute("SELECT MAX(last_fetched_at) FROM refresh_meta")
    row = db.fetchone()
    return row[0] if row else None
