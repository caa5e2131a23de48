"""
Repository database operations for repocache.

These are the persistence operations the cache depends on: select with
filters, batch upsert keyed by (owner, name), topic set-union, and the
metadata queries behind the languages and stats views. Functions take an
open Database and never commit themselves; the caller owns the transaction.
"""

import json
from typing import Dict, Any, Optional, List, Iterable, Tuple

from ..domain import RepositoryRecord, RepoFilters
from .connection import Database

# Only these rows are ever served
VISIBLE = "r.is_private = 0 AND r.is_archived = 0 AND r.is_disabled = 0"

# Columns overwritten on every upsert; id and first_seen_at are never touched
_MUTABLE_COLUMNS = (
    'github_id', 'owner', 'name', 'full_name', 'html_url', 'description',
    'language', 'stars', 'forks', 'open_issues', 'watchers', 'size',
    'is_private', 'is_fork', 'is_archived', 'is_disabled', 'difficulty',
    'created_at', 'updated_at', 'pushed_at', 'last_fetched_at',
)


def _record_to_row(record: RepositoryRecord, fetched_at: str) -> Dict[str, Any]:
    """Convert RepositoryRecord to database column values."""
    return {
        'github_id': record.github_id,
        'owner': record.owner,
        'name': record.name,
        'full_name': record.full_name or f"{record.owner}/{record.name}",
        'html_url': record.html_url,
        'description': record.description,
        'language': record.language,
        'stars': record.stars,
        'forks': record.forks,
        'open_issues': record.open_issues,
        'watchers': record.watchers,
        'size': record.size,
        'is_private': record.is_private,
        'is_fork': record.is_fork,
        'is_archived': record.is_archived,
        'is_disabled': record.is_disabled,
        'difficulty': record.difficulty,
        'created_at': record.created_at,
        'updated_at': record.updated_at,
        'pushed_at': record.pushed_at,
        'last_fetched_at': fetched_at,
    }


def _find_repo_id(db: Database, record: RepositoryRecord) -> Optional[int]:
    """Locate an existing row by natural identity, then by upstream id."""
    db.execute(
        "SELECT id FROM repos WHERE owner = ? AND name = ?",
        (record.owner, record.name)
    )
    row = db.fetchone()
    if row:
        return row['id']

    # Renamed or transferred upstream: same github_id, new owner/name
    if record.github_id is not None:
        db.execute("SELECT id FROM repos WHERE github_id = ?", (record.github_id,))
        row = db.fetchone()
        if row:
            return row['id']
    return None


def _insert_repo(db: Database, row: Dict[str, Any], first_seen_at: str) -> int:
    record = dict(row, first_seen_at=first_seen_at)
    columns = list(record.keys())
    placeholders = ', '.join(['?' for _ in columns])
    sql = f"INSERT INTO repos ({', '.join(columns)}) VALUES ({placeholders})"
    db.execute(sql, tuple(record.values()))
    return db.lastrowid or 0


def _update_repo(db: Database, repo_id: int, row: Dict[str, Any]) -> None:
    if row['github_id'] is not None:
        # A recreated repository reuses the name with a new upstream id
        db.execute(
            "UPDATE repos SET github_id = NULL WHERE github_id = ? AND id != ?",
            (row['github_id'], repo_id)
        )
    set_clause = ', '.join([f"{k} = ?" for k in _MUTABLE_COLUMNS])
    sql = f"UPDATE repos SET {set_clause} WHERE id = ?"
    db.execute(sql, tuple(row[k] for k in _MUTABLE_COLUMNS) + (repo_id,))


def upsert_topics(db: Database, repo_id: int, names: Iterable[str]) -> None:
    """
    Associate topics with a repository.

    Set-union: existing associations are kept, new topics are created on
    first sight, nothing is ever removed.
    """
    for name in sorted({n.strip() for n in names if n and n.strip()}):
        db.execute("INSERT OR IGNORE INTO topics (name) VALUES (?)", (name,))
        db.execute("SELECT id FROM topics WHERE name = ?", (name,))
        topic_id = db.fetchone()['id']
        db.execute(
            "INSERT OR IGNORE INTO repo_topics (repo_id, topic_id) VALUES (?, ?)",
            (repo_id, topic_id)
        )


def _link_query(db: Database, repo_id: int, query_key: str, seen_at: str) -> None:
    db.execute(
        """INSERT INTO repo_queries (repo_id, query_key, first_seen_at, last_seen_at)
           VALUES (?, ?, ?, ?)
           ON CONFLICT (repo_id, query_key) DO UPDATE SET last_seen_at = excluded.last_seen_at""",
        (repo_id, query_key, seen_at, seen_at)
    )


def upsert_repositories(
    db: Database,
    query_key: str,
    records: Iterable[RepositoryRecord],
    fetched_at: str,
) -> List[int]:
    """
    Insert or update a batch of repositories found under a query key.

    Args:
        db: Database connection (caller commits)
        query_key: Query key the batch was fetched for
        records: Fetched repositories
        fetched_at: ISO timestamp of the fetch

    Returns:
        Internal ids of the upserted rows, in input order
    """
    ids = []
    for record in records:
        row = _record_to_row(record, fetched_at)
        repo_id = _find_repo_id(db, record)
        if repo_id is None:
            repo_id = _insert_repo(db, row, fetched_at)
        else:
            _update_repo(db, repo_id, row)

        upsert_topics(db, repo_id, record.topics)
        _link_query(db, repo_id, query_key, fetched_at)
        ids.append(repo_id)
    return ids


def _escape_like(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _build_where(filters: RepoFilters) -> Tuple[str, List[Any]]:
    conditions = [VISIBLE]
    params: List[Any] = []

    text = (filters.text or '').strip().lower()
    if text:
        pattern = f"%{_escape_like(text)}%"
        conditions.append(
            "(UNICODE_LOWER(r.name) LIKE ? ESCAPE '\\'"
            " OR UNICODE_LOWER(COALESCE(r.description, '')) LIKE ? ESCAPE '\\'"
            " OR UNICODE_LOWER(COALESCE(r.full_name, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern, pattern])

    if filters.language_filter:
        conditions.append("r.language = ?")
        params.append(filters.language_filter)

    if filters.difficulty_filter:
        conditions.append("r.difficulty = ?")
        params.append(filters.difficulty_filter)

    return ' AND '.join(conditions), params


def select_repositories(db: Database, filters: RepoFilters) -> List[RepositoryRecord]:
    """
    Select one page of repositories.

    Ordering is total: the sort column (missing values last), then
    (owner, name) ascending, so identical filters always yield the same page.
    """
    where, params = _build_where(filters)
    column = filters.sort_column
    direction = 'DESC' if filters.order == 'desc' else 'ASC'

    db.execute(
        f"""SELECT r.* FROM repos r
            WHERE {where}
            ORDER BY r.{column} IS NULL, r.{column} {direction}, r.owner ASC, r.name ASC
            LIMIT ? OFFSET ?""",
        tuple(params) + (filters.per_page, filters.offset)
    )
    rows = [dict(row) for row in db.fetchall()]
    return attach_associations(db, rows)


def count_repositories(db: Database, filters: RepoFilters) -> int:
    """Count repositories matching the filters (ignores paging)."""
    where, params = _build_where(filters)
    db.execute(f"SELECT COUNT(*) FROM repos r WHERE {where}", tuple(params))
    row = db.fetchone()
    return row[0] if row else 0


def attach_associations(db: Database, rows: List[Dict[str, Any]]) -> List[RepositoryRecord]:
    if not rows:
        return []

    ids = [row['id'] for row in rows]
    placeholders = ', '.join(['?' for _ in ids])

    topics: Dict[int, List[str]] = {}
    db.execute(
        f"""SELECT rt.repo_id, t.name FROM repo_topics rt
            JOIN topics t ON t.id = rt.topic_id
            WHERE rt.repo_id IN ({placeholders})
            ORDER BY t.name""",
        tuple(ids)
    )
    for row in db.fetchall():
        topics.setdefault(row['repo_id'], []).append(row['name'])

    queries: Dict[int, List[str]] = {}
    db.execute(
        f"""SELECT repo_id, query_key FROM repo_queries
            WHERE repo_id IN ({placeholders})
            ORDER BY query_key""",
        tuple(ids)
    )
    for row in db.fetchall():
        queries.setdefault(row['repo_id'], []).append(row['query_key'])

    for row in rows:
        row['topics'] = topics.get(row['id'], [])
        row['query_keys'] = queries.get(row['id'], [])
    return [record_to_domain(row) for row in rows]


def get_repository(db: Database, repo_id: int) -> Optional[RepositoryRecord]:
    """Get repository by internal id."""
    db.execute("SELECT * FROM repos WHERE id = ?", (repo_id,))
    row = db.fetchone()
    if not row:
        return None
    return attach_associations(db, [dict(row)])[0]


def get_repositories(db: Database, repo_ids: List[int]) -> List[RepositoryRecord]:
    """Get repositories by internal id, in the order given."""
    if not repo_ids:
        return []
    unique_ids = list(dict.fromkeys(repo_ids))
    placeholders = ', '.join(['?' for _ in unique_ids])
    db.execute(f"SELECT * FROM repos WHERE id IN ({placeholders})", tuple(unique_ids))
    by_id = {record.id: record for record in attach_associations(db, [dict(row) for row in db.fetchall()])}
    return [by_id[repo_id] for repo_id in unique_ids if repo_id in by_id]


def get_repository_by_name(db: Database, owner: str, name: str) -> Optional[RepositoryRecord]:
    """Get repository by natural identity."""
    db.execute("SELECT * FROM repos WHERE owner = ? AND name = ?", (owner, name))
    row = db.fetchone()
    if not row:
        return None
    return attach_associations(db, [dict(row)])[0]


def set_languages(db: Database, owner: str, name: str, languages: Dict[str, int]) -> bool:
    """Record per-repository language byte counts. Returns False if not cached."""
    db.execute(
        "UPDATE repos SET languages = ? WHERE owner = ? AND name = ?",
        (json.dumps(languages, sort_keys=True), owner, name)
    )
    return db.rowcount > 0


def get_distinct_languages(db: Database) -> List[str]:
    """Sorted distinct non-empty primary languages of servable repositories."""
    db.execute(f"""
        SELECT DISTINCT r.language FROM repos r
        WHERE {VISIBLE} AND r.language IS NOT NULL AND TRIM(r.language) != ''
        ORDER BY r.language
    """)
    return [row['language'] for row in db.fetchall()]


def get_repo_count(db: Database) -> int:
    """Get total number of cached repositories."""
    db.execute("SELECT COUNT(*) FROM repos")
    row = db.fetchone()
    return row[0] if row else 0


def get_topic_count(db: Database) -> int:
    """Get size of the topic vocabulary."""
    db.execute("SELECT COUNT(*) FROM topics")
    row = db.fetchone()
    return row[0] if row else 0


def prune_query(db: Database, query_key: str, before: str) -> Tuple[int, int]:
    """
    Drop stale associations for a query key.

    Associations last seen before `before` are removed, then repositories
    left with no association and no favorite are deleted. Topics are kept.

    Returns:
        (associations removed, repositories removed)
    """
    db.execute(
        "DELETE FROM repo_queries WHERE query_key = ? AND last_seen_at < ?",
        (query_key, before)
    )
    unlinked = db.rowcount

    db.execute("""
        DELETE FROM repos
        WHERE id NOT IN (SELECT repo_id FROM repo_queries)
          AND id NOT IN (SELECT repo_id FROM favorites)
    """)
    return unlinked, db.rowcount


def record_to_domain(record: Dict[str, Any]) -> RepositoryRecord:
    """
    Convert a database record to a RepositoryRecord.

    Args:
        record: Database row as dictionary, optionally with 'topics' and
            'query_keys' lists attached

    Returns:
        RepositoryRecord domain object
    """
    languages = None
    if record.get('languages'):
        try:
            languages = json.loads(record['languages'])
        except (json.JSONDecodeError, TypeError):
            pass

    return RepositoryRecord(
        id=record['id'],
        github_id=record.get('github_id'),
        owner=record['owner'],
        name=record['name'],
        full_name=record.get('full_name'),
        html_url=record.get('html_url'),
        description=record.get('description'),
        language=record.get('language'),
        languages=languages,
        stars=record.get('stars') or 0,
        forks=record.get('forks') or 0,
        open_issues=record.get('open_issues') or 0,
        watchers=record.get('watchers') or 0,
        size=record.get('size') or 0,
        topics=tuple(record.get('topics') or ()),
        is_private=bool(record.get('is_private', False)),
        is_fork=bool(record.get('is_fork', False)),
        is_archived=bool(record.get('is_archived', False)),
        is_disabled=bool(record.get('is_disabled', False)),
        difficulty=record.get('difficulty'),
        created_at=record.get('created_at'),
        updated_at=record.get('updated_at'),
        pushed_at=record.get('pushed_at'),
        query_keys=tuple(record.get('query_keys') or ()),
        first_seen_at=record.get('first_seen_at'),
        last_fetched_at=record.get('last_fetched_at'),
    )
