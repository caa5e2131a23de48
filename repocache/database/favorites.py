"""
User favorites for repocache.

Favorites reference repos.id. Upserts never change that id, so a favorite
stays attached to its repository across any number of refreshes.
"""

from typing import List, Tuple

from ..domain import RepositoryRecord
from .connection import Database
from .repository import attach_associations


def add_favorite(db: Database, user_id: str, repo_id: int, created_at: str) -> bool:
    """
    Favorite a repository.

    Returns:
        True if added, False if it was already a favorite
    """
    db.execute(
        "INSERT OR IGNORE INTO favorites (user_id, repo_id, created_at) VALUES (?, ?, ?)",
        (user_id, repo_id, created_at)
    )
    return db.rowcount > 0


def remove_favorite(db: Database, user_id: str, repo_id: int) -> bool:
    """Remove a favorite. Returns True if one was removed."""
    db.execute(
        "DELETE FROM favorites WHERE user_id = ? AND repo_id = ?",
        (user_id, repo_id)
    )
    return db.rowcount > 0


def get_user_favorites(
    db: Database,
    user_id: str,
    limit: int,
    offset: int = 0,
) -> List[Tuple[RepositoryRecord, str]]:
    """
    Get a user's favorites, newest first.

    Returns:
        List of (repository, favorited_at) pairs
    """
    db.execute(
        """SELECT r.*, f.created_at AS favorited_at
           FROM favorites f
           JOIN repos r ON r.id = f.repo_id
           WHERE f.user_id = ?
           ORDER BY f.created_at DESC, r.id ASC
           LIMIT ? OFFSET ?""",
        (user_id, limit, offset)
    )
    rows = [dict(row) for row in db.fetchall()]
    favorited = [row.pop('favorited_at') for row in rows]
    return list(zip(attach_associations(db, rows), favorited))


def get_favorite_count(db: Database) -> int:
    """Get total number of favorites."""
    db.execute("SELECT COUNT(*) FROM favorites")
    row = db.fetchone()
    return row[0] if row else 0
