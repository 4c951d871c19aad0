"""SQLite database utilities for the content-ops workflow.

Provides connection management and table initialization. JSON-valued
columns (keywords, metadata, sync_metadata, config, ...) are stored as TEXT.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .config import settings

# SQL for creating the core tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS blog_posts (
    post_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    excerpt TEXT NOT NULL DEFAULT '',
    slug TEXT NOT NULL DEFAULT '',
    featured_image TEXT NOT NULL DEFAULT '',
    featured_image_alt TEXT NOT NULL DEFAULT '',
    seo_title TEXT NOT NULL DEFAULT '',
    seo_description TEXT NOT NULL DEFAULT '',
    keywords TEXT NOT NULL DEFAULT '[]',
    author TEXT NOT NULL DEFAULT '',
    published_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS blog_generation_queue (
    queue_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    created_by TEXT NOT NULL,
    topic TEXT NOT NULL,
    keywords TEXT NOT NULL DEFAULT '[]',
    priority INTEGER NOT NULL DEFAULT 5,
    status TEXT NOT NULL DEFAULT 'pending',
    post_id TEXT,
    generated_title TEXT,
    generated_content TEXT,
    generation_error TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS blog_approvals (
    approval_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    queue_id TEXT,
    post_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    requested_by TEXT NOT NULL,
    reviewed_by TEXT,
    reviewed_at TEXT,
    review_notes TEXT,
    rejection_reason TEXT,
    revision_number INTEGER NOT NULL DEFAULT 1,
    previous_approval_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (queue_id) REFERENCES blog_generation_queue(queue_id)
);

CREATE TABLE IF NOT EXISTS blog_platform_publishing (
    publishing_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    queue_id TEXT,
    platform TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    platform_post_id TEXT,
    platform_url TEXT,
    sync_status TEXT NOT NULL DEFAULT 'not_synced',
    retry_count INTEGER NOT NULL DEFAULT 0,
    error_code TEXT,
    error_message TEXT,
    last_retry_at TEXT,
    last_synced_at TEXT,
    published_at TEXT,
    published_by TEXT,
    sync_metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (post_id, platform)
);

CREATE TABLE IF NOT EXISTS integrations (
    integration_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    platform TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    config TEXT NOT NULL DEFAULT '{}',
    field_mappings TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS content_index (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    org_id TEXT NOT NULL,
    site_id TEXT NOT NULL,
    url TEXT NOT NULL,
    slug TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    is_published INTEGER NOT NULL DEFAULT 1,
    UNIQUE (org_id, url)
);

CREATE TABLE IF NOT EXISTS publish_tasks (
    task_id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    publishing_id TEXT NOT NULL,
    operation TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'queued',
    idempotency_key TEXT NOT NULL UNIQUE,
    principal TEXT NOT NULL DEFAULT '{}',
    payload TEXT NOT NULL DEFAULT '{}',
    attempts INTEGER NOT NULL DEFAULT 0,
    worker_id TEXT,
    lease_expires_at TEXT,
    last_error TEXT,
    result TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_queue_org_status ON blog_generation_queue(org_id, status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_approvals_post_revision ON blog_approvals(post_id, revision_number);
CREATE UNIQUE INDEX IF NOT EXISTS idx_approvals_queue_revision ON blog_approvals(queue_id, revision_number);
CREATE INDEX IF NOT EXISTS idx_publishing_org_status ON blog_platform_publishing(org_id, status);
CREATE INDEX IF NOT EXISTS idx_integrations_org_platform ON integrations(org_id, platform);
CREATE INDEX IF NOT EXISTS idx_content_index_site ON content_index(org_id, site_id);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON publish_tasks(status, created_at);
"""

# Columns holding JSON documents, per table
JSON_COLUMNS: dict[str, frozenset[str]] = {
    "blog_posts": frozenset({"keywords"}),
    "blog_generation_queue": frozenset({"keywords", "metadata"}),
    "blog_approvals": frozenset(),
    "blog_platform_publishing": frozenset({"sync_metadata"}),
    "integrations": frozenset({"config", "field_mappings"}),
    "content_index": frozenset(),
    "publish_tasks": frozenset({"principal", "payload", "result"}),
}


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Get a SQLite connection with row factory enabled."""
    path = db_path or settings.database.db_path
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: str | None = None) -> None:
    """Create all tables if they don't exist."""
    conn = get_connection(db_path)
    try:
        conn.executescript(_CREATE_TABLES_SQL)
        conn.commit()
    finally:
        conn.close()


def create_tables(conn: sqlite3.Connection) -> None:
    """Create all tables on an already-open connection."""
    conn.executescript(_CREATE_TABLES_SQL)
    conn.commit()
