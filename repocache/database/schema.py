"""
Database schema for repocache.

This module defines the SQLite schema and handles migrations.
The schema is designed to:
- Hold one row per repository regardless of how many queries found it
- Keep topics as an additive, globally unique vocabulary
- Track refresh bookkeeping per query key
- Keep internal repository ids stable so favorites never dangle
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

# Current schema version - increment when schema changes
# v1: Initial schema
# v2: Added repo_queries.last_seen_at for prune
# v3: Added repos.languages (per-repository language byte counts)
CURRENT_VERSION = 3

SCHEMA_V1 = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS _schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

-- Cached repositories (denormalized search results)
CREATE TABLE IF NOT EXISTS repos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    github_id INTEGER UNIQUE,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    full_name TEXT,
    html_url TEXT,
    description TEXT,
    language TEXT,
    languages TEXT,  -- JSON object {language: bytes}

    stars INTEGER DEFAULT 0,
    forks INTEGER DEFAULT 0,
    open_issues INTEGER DEFAULT 0,
    watchers INTEGER DEFAULT 0,
    size INTEGER DEFAULT 0,

    is_private BOOLEAN DEFAULT 0,
    is_fork BOOLEAN DEFAULT 0,
    is_archived BOOLEAN DEFAULT 0,
    is_disabled BOOLEAN DEFAULT 0,

    difficulty TEXT,

    -- GitHub timestamps
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    pushed_at TIMESTAMP,

    -- Cache bookkeeping
    first_seen_at TIMESTAMP,
    last_fetched_at TIMESTAMP,

    UNIQUE (owner, name)
);

-- Topic vocabulary (never deleted)
CREATE TABLE IF NOT EXISTS topics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS repo_topics (
    repo_id INTEGER NOT NULL,
    topic_id INTEGER NOT NULL,
    PRIMARY KEY (repo_id, topic_id),
    FOREIGN KEY (repo_id) REFERENCES repos(id) ON DELETE CASCADE,
    FOREIGN KEY (topic_id) REFERENCES topics(id) ON DELETE CASCADE
);

-- Which query keys discovered which repos
CREATE TABLE IF NOT EXISTS repo_queries (
    repo_id INTEGER NOT NULL,
    query_key TEXT NOT NULL,
    first_seen_at TIMESTAMP,
    last_seen_at TIMESTAMP,
    PRIMARY KEY (repo_id, query_key),
    FOREIGN KEY (repo_id) REFERENCES repos(id) ON DELETE CASCADE
);

-- Refresh bookkeeping, one row per query key
CREATE TABLE IF NOT EXISTS refresh_meta (
    query_key TEXT PRIMARY KEY,
    last_fetched_at TIMESTAMP NOT NULL,
    page INTEGER,
    per_page INTEGER,
    total_count INTEGER
);

-- User favorites (foreign key target only; users live elsewhere)
CREATE TABLE IF NOT EXISTS favorites (
    user_id TEXT NOT NULL,
    repo_id INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL,
    PRIMARY KEY (user_id, repo_id),
    FOREIGN KEY (repo_id) REFERENCES repos(id) ON DELETE CASCADE
);

-- Indexes for fast queries
CREATE INDEX IF NOT EXISTS idx_repos_language ON repos(language);
CREATE INDEX IF NOT EXISTS idx_repos_difficulty ON repos(difficulty);
CREATE INDEX IF NOT EXISTS idx_repos_stars ON repos(stars);
CREATE INDEX IF NOT EXISTS idx_repos_forks ON repos(forks);
CREATE INDEX IF NOT EXISTS idx_repos_pushed ON repos(pushed_at);

CREATE INDEX IF NOT EXISTS idx_repo_topics_topic ON repo_topics(topic_id);
CREATE INDEX IF NOT EXISTS idx_repo_queries_key ON repo_queries(query_key);
CREATE INDEX IF NOT EXISTS idx_favorites_repo ON favorites(repo_id, user_id);
"""


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version from database."""
    try:
        cursor = conn.execute(
            "SELECT MAX(version) FROM _schema_info"
        )
        result = cursor.fetchone()
        return result[0] if result[0] is not None else 0
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return 0


def apply_schema(conn: sqlite3.Connection, version: int = CURRENT_VERSION) -> None:
    """
    Apply schema to database.

    The cache can be rebuilt from GitHub, so an old schema version is
    dropped and recreated rather than migrated.
    """
    current = get_schema_version(conn)

    if current != 0 and current < CURRENT_VERSION:
        logger.info(f"Schema version {current} -> {CURRENT_VERSION}, rebuilding cache")

        conn.executescript("""
            DROP TABLE IF EXISTS favorites;
            DROP TABLE IF EXISTS repo_queries;
            DROP TABLE IF EXISTS repo_topics;
            DROP TABLE IF EXISTS topics;
            DROP TABLE IF EXISTS refresh_meta;
            DROP TABLE IF EXISTS repos;
            DROP TABLE IF EXISTS _schema_info;
        """)

    conn.executescript(SCHEMA_V1)
    conn.execute(
        "INSERT OR REPLACE INTO _schema_info (version, description) VALUES (?, ?)",
        (version, "v0.3.0: per-repository languages")
    )

    conn.commit()


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure database has current schema, migrating if necessary."""
    current = get_schema_version(conn)

    if current < CURRENT_VERSION:
        apply_schema(conn, CURRENT_VERSION)
