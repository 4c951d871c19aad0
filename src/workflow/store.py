"""Persistence for workflow records: SQLite (local) and Supabase (hosted).

Both stores implement the same contract on top of four table primitives
(select, insert, update, delete). Status changes go through
compare-and-set helpers: the update only applies while the row still has
one of the expected statuses, and ``None`` comes back when another writer
got there first.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from src.common.config import get_supabase_service_key, get_supabase_url, settings
from src.common.database import JSON_COLUMNS, create_tables, get_connection
from src.common.errors import InvalidState
from src.link_validator.models import IndexedContent
from src.publisher.models import PublishPlatform

from .models import (
    ApprovalRecord,
    ContentIndexEntry,
    GenerationQueueItem,
    Integration,
    PlatformPublishingRecord,
    Post,
    PublishTask,
    TaskStatus,
    utc_now,
)
from .status import ApprovalStatus, PlatformStatus, QueueStatus

logger = logging.getLogger(__name__)

POSTS = "blog_posts"
QUEUE = "blog_generation_queue"
APPROVALS = "blog_approvals"
PUBLISHING = "blog_platform_publishing"
INTEGRATIONS = "integrations"
CONTENT_INDEX = "content_index"
TASKS = "publish_tasks"

PRIMARY_KEYS: dict[str, str] = {
    POSTS: "post_id",
    QUEUE: "queue_id",
    APPROVALS: "approval_id",
    PUBLISHING: "publishing_id",
    INTEGRATIONS: "integration_id",
    CONTENT_INDEX: "id",
    TASKS: "task_id",
}

# (column, op, value) with op one of: eq, in, lt, is_null
Filter = tuple[str, str, Any]

_IDENT_RE = re.compile(r"^[a-z_]+$")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def _statuses(expected: Iterable[Enum | str]) -> list[str]:
    return [_plain(s) for s in expected]


class WorkflowStore(ABC):
    """Storage contract used by the workflow services."""

    # ------------------------------------------------------------------
    # Table primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _select(
        self,
        table: str,
        filters: list[Filter],
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row. Raises InvalidState on a uniqueness conflict."""

    @abstractmethod
    def _update(self, table: str, filters: list[Filter], updates: dict[str, Any]) -> list[dict[str, Any]]:
        """Apply ``updates`` to matching rows and return them as updated."""

    @abstractmethod
    def _delete(self, table: str, filters: list[Filter]) -> int:
        ...

    def transaction(self):
        """Context manager grouping writes. Stores without transactions no-op."""
        return nullcontext()

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _get_one(self, table: str, filters: list[Filter]) -> Optional[dict[str, Any]]:
        rows = self._select(table, filters, limit=1)
        return rows[0] if rows else None

    def _compare_and_set(
        self,
        table: str,
        key: str,
        expected: Iterable[Enum | str],
        updates: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        updates = {**updates, "updated_at": utc_now()}
        rows = self._update(
            table,
            [(PRIMARY_KEYS[table], "eq", key), ("status", "in", _statuses(expected))],
            updates,
        )
        return rows[0] if rows else None

    def _update_by_key(self, table: str, key: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
        updates = {**updates, "updated_at": utc_now()}
        rows = self._update(table, [(PRIMARY_KEYS[table], "eq", key)], updates)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def save_post(self, post: Post) -> Post:
        existing = self._get_one(POSTS, [("post_id", "eq", post.post_id)])
        if existing is None:
            return Post.from_row(self._insert(POSTS, post.to_row()))
        row = post.to_row()
        row.pop("created_at", None)
        return Post.from_row(self._update_by_key(POSTS, post.post_id, row))

    def get_post(self, org_id: str, post_id: str) -> Optional[Post]:
        row = self._get_one(POSTS, [("post_id", "eq", post_id), ("org_id", "eq", org_id)])
        return Post.from_row(row) if row else None

    # ------------------------------------------------------------------
    # Generation queue
    # ------------------------------------------------------------------

    def create_queue_item(self, item: GenerationQueueItem) -> GenerationQueueItem:
        return GenerationQueueItem.from_row(self._insert(QUEUE, item.to_row()))

    def get_queue_item(self, org_id: str, queue_id: str) -> Optional[GenerationQueueItem]:
        row = self._get_one(QUEUE, [("queue_id", "eq", queue_id), ("org_id", "eq", org_id)])
        return GenerationQueueItem.from_row(row) if row else None

    def compare_and_set_queue(
        self,
        queue_id: str,
        expected: Iterable[QueueStatus],
        updates: dict[str, Any],
    ) -> Optional[GenerationQueueItem]:
        row = self._compare_and_set(QUEUE, queue_id, expected, updates)
        return GenerationQueueItem.from_row(row) if row else None

    def list_queue(self, org_id: str, status: QueueStatus | None = None) -> list[GenerationQueueItem]:
        filters: list[Filter] = [("org_id", "eq", org_id)]
        if status is not None:
            filters.append(("status", "eq", status))
        rows = self._select(QUEUE, filters, order_by="created_at")
        return [GenerationQueueItem.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def create_approval(self, approval: ApprovalRecord) -> ApprovalRecord:
        return ApprovalRecord.from_row(self._insert(APPROVALS, approval.to_row()))

    def get_approval(self, org_id: str, approval_id: str) -> Optional[ApprovalRecord]:
        row = self._get_one(APPROVALS, [("approval_id", "eq", approval_id), ("org_id", "eq", org_id)])
        return ApprovalRecord.from_row(row) if row else None

    def find_approvals(
        self,
        org_id: str,
        post_id: str | None = None,
        queue_id: str | None = None,
        statuses: Iterable[ApprovalStatus] | None = None,
    ) -> list[ApprovalRecord]:
        filters: list[Filter] = [("org_id", "eq", org_id)]
        if post_id:
            filters.append(("post_id", "eq", post_id))
        if queue_id:
            filters.append(("queue_id", "eq", queue_id))
        if statuses is not None:
            filters.append(("status", "in", _statuses(statuses)))
        rows = self._select(APPROVALS, filters, order_by="revision_number", desc=True)
        return [ApprovalRecord.from_row(r) for r in rows]

    def compare_and_set_approval(
        self,
        approval_id: str,
        expected: Iterable[ApprovalStatus],
        updates: dict[str, Any],
    ) -> Optional[ApprovalRecord]:
        row = self._compare_and_set(APPROVALS, approval_id, expected, updates)
        return ApprovalRecord.from_row(row) if row else None

    def apply_review(
        self,
        approval: ApprovalRecord,
        approval_updates: dict[str, Any],
        queue_item: GenerationQueueItem | None = None,
        queue_target: QueueStatus | None = None,
    ) -> tuple[ApprovalRecord, Optional[GenerationQueueItem]]:
        """Update an approval and its linked queue item as one unit.

        Raises:
            InvalidState: Either row changed status since it was read.
        """
        with self.transaction():
            updated = self.compare_and_set_approval(approval.approval_id, [approval.status], approval_updates)
            if updated is None:
                raise InvalidState(f"Approval {approval.approval_id} was modified concurrently")
            queue = None
            if queue_item is not None and queue_target is not None:
                queue = self.compare_and_set_queue(queue_item.queue_id, [queue_item.status], {"status": queue_target})
                if queue is None:
                    raise InvalidState(f"Queue item {queue_item.queue_id} was modified concurrently")
        return updated, queue

    # ------------------------------------------------------------------
    # Platform publishing records
    # ------------------------------------------------------------------

    def create_publishing(self, record: PlatformPublishingRecord) -> PlatformPublishingRecord:
        return PlatformPublishingRecord.from_row(self._insert(PUBLISHING, record.to_row()))

    def get_publishing(self, org_id: str, publishing_id: str) -> Optional[PlatformPublishingRecord]:
        row = self._get_one(PUBLISHING, [("publishing_id", "eq", publishing_id), ("org_id", "eq", org_id)])
        return PlatformPublishingRecord.from_row(row) if row else None

    def find_publishing(
        self,
        org_id: str,
        post_id: str,
        platform: PublishPlatform | str,
    ) -> Optional[PlatformPublishingRecord]:
        row = self._get_one(
            PUBLISHING,
            [("org_id", "eq", org_id), ("post_id", "eq", post_id), ("platform", "eq", platform)],
        )
        return PlatformPublishingRecord.from_row(row) if row else None

    def list_publishing(
        self,
        org_id: str | None = None,
        status: PlatformStatus | None = None,
        updated_before: str | None = None,
    ) -> list[PlatformPublishingRecord]:
        filters: list[Filter] = []
        if org_id:
            filters.append(("org_id", "eq", org_id))
        if status is not None:
            filters.append(("status", "eq", status))
        if updated_before:
            filters.append(("updated_at", "lt", updated_before))
        rows = self._select(PUBLISHING, filters, order_by="updated_at")
        return [PlatformPublishingRecord.from_row(r) for r in rows]

    def compare_and_set_publishing(
        self,
        publishing_id: str,
        expected: Iterable[PlatformStatus],
        updates: dict[str, Any],
    ) -> Optional[PlatformPublishingRecord]:
        row = self._compare_and_set(PUBLISHING, publishing_id, expected, updates)
        return PlatformPublishingRecord.from_row(row) if row else None

    def delete_publishing(self, publishing_id: str) -> bool:
        return self._delete(PUBLISHING, [("publishing_id", "eq", publishing_id)]) > 0

    # ------------------------------------------------------------------
    # Integration registry (read-only from the workflow)
    # ------------------------------------------------------------------

    def save_integration(self, integration: Integration) -> Integration:
        return Integration.from_row(self._insert(INTEGRATIONS, integration.to_row()))

    def get_integration(self, org_id: str, platform: PublishPlatform | str) -> Optional[Integration]:
        rows = self._select(
            INTEGRATIONS,
            [("org_id", "eq", org_id), ("platform", "eq", platform), ("status", "eq", "active")],
            order_by="created_at",
            desc=True,
            limit=1,
        )
        return Integration.from_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Content index
    # ------------------------------------------------------------------

    def save_content_index(self, entries: Iterable[ContentIndexEntry]) -> int:
        count = 0
        with self.transaction():
            for entry in entries:
                self._delete(CONTENT_INDEX, [("org_id", "eq", entry.org_id), ("url", "eq", entry.url)])
                self._insert(CONTENT_INDEX, entry.to_row())
                count += 1
        return count

    def list_content_index(self, org_id: str, site_id: str | None = None) -> list[IndexedContent]:
        filters: list[Filter] = [("org_id", "eq", org_id)]
        if site_id:
            filters.append(("site_id", "eq", site_id))
        return [ContentIndexEntry.from_row(r).to_indexed() for r in self._select(CONTENT_INDEX, filters)]

    # ------------------------------------------------------------------
    # Publish tasks
    # ------------------------------------------------------------------

    def create_task(self, task: PublishTask) -> PublishTask:
        """Insert a task; an existing task with the same idempotency key wins."""
        existing = self.find_task_by_key(task.idempotency_key)
        if existing is not None:
            return existing
        try:
            return PublishTask.from_row(self._insert(TASKS, task.to_row()))
        except InvalidState:
            existing = self.find_task_by_key(task.idempotency_key)
            if existing is None:
                raise
            return existing

    def get_task(self, task_id: str) -> Optional[PublishTask]:
        row = self._get_one(TASKS, [("task_id", "eq", task_id)])
        return PublishTask.from_row(row) if row else None

    def find_task_by_key(self, idempotency_key: str) -> Optional[PublishTask]:
        row = self._get_one(TASKS, [("idempotency_key", "eq", idempotency_key)])
        return PublishTask.from_row(row) if row else None

    def claim_task(self, worker_id: str, lease_seconds: int) -> Optional[PublishTask]:
        """Claim the oldest queued task, or a running one whose lease expired."""
        now = utc_now()
        candidates = self._select(TASKS, [("status", "eq", TaskStatus.QUEUED)], order_by="created_at", limit=10)
        candidates += self._select(
            TASKS,
            [("status", "eq", TaskStatus.RUNNING), ("lease_expires_at", "lt", now)],
            order_by="created_at",
            limit=10,
        )
        for row in candidates:
            claimed = self._update(
                TASKS,
                [
                    ("task_id", "eq", row["task_id"]),
                    ("status", "eq", row["status"]),
                    ("attempts", "eq", row["attempts"]),
                ],
                {
                    "status": TaskStatus.RUNNING,
                    "worker_id": worker_id,
                    "attempts": row["attempts"] + 1,
                    "lease_expires_at": utc_now(lease_seconds),
                    "updated_at": now,
                },
            )
            if claimed:
                return PublishTask.from_row(claimed[0])
        return None

    def compare_and_set_task(
        self,
        task_id: str,
        expected: Iterable[TaskStatus],
        updates: dict[str, Any],
    ) -> Optional[PublishTask]:
        row = self._compare_and_set(TASKS, task_id, expected, updates)
        return PublishTask.from_row(row) if row else None


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteWorkflowStore(WorkflowStore):
    """Local store backed by one SQLite connection (WAL mode).

    Writes run inside ``BEGIN IMMEDIATE`` transactions so a conditional
    update and the read of its result are atomic across processes.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or settings.database.db_path
        self._conn = get_connection(self.db_path)
        self._conn.isolation_level = None  # explicit transactions only
        create_tables(self._conn)
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                self._conn.execute("COMMIT")

    def close(self) -> None:
        self._conn.close()

    def _encode(self, table: str, column: str, value: Any) -> Any:
        value = _plain(value)
        if column in JSON_COLUMNS[table]:
            return json.dumps(value, ensure_ascii=False) if value is not None else None
        if isinstance(value, bool):
            return int(value)
        return value

    def _decode(self, table: str, row: sqlite3.Row) -> dict[str, Any]:
        data = dict(row)
        for column in JSON_COLUMNS[table]:
            if data.get(column) is not None:
                data[column] = json.loads(data[column])
        return data

    def _where(self, table: str, filters: list[Filter]) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, op, value in filters:
            if not _IDENT_RE.match(column):
                raise ValueError(f"Invalid column name: {column}")
            if op == "eq":
                clauses.append(f"{column} = ?")
                params.append(self._encode(table, column, value))
            elif op == "in":
                values = _plain(list(value))
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
            elif op == "lt":
                clauses.append(f"{column} < ?")
                params.append(self._encode(table, column, value))
            elif op == "is_null":
                clauses.append(f"{column} IS NULL")
            else:
                raise ValueError(f"Unsupported filter op: {op}")
        return (" AND ".join(clauses) or "1"), params

    def _select(self, table, filters, order_by=None, desc=False, limit=None):
        where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table} WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by} {'DESC' if desc else 'ASC'}"
        if limit:
            sql += f" LIMIT {int(limit)}"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._decode(table, r) for r in rows]

    def _insert(self, table, row):
        if table == CONTENT_INDEX:
            row = {k: v for k, v in row.items() if k != "id"}
        columns = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        params = [self._encode(table, c, row[c]) for c in columns]
        pk = PRIMARY_KEYS[table]
        with self.transaction():
            try:
                cursor = self._conn.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise InvalidState(f"Duplicate {table} record: {exc}") from exc
            key = row.get(pk, cursor.lastrowid)
            return self._select(table, [(pk, "eq", key)])[0]

    def _update(self, table, filters, updates):
        pk = PRIMARY_KEYS[table]
        where, params = self._where(table, filters)
        assignments = ", ".join(f"{c} = ?" for c in updates)
        values = [self._encode(table, c, v) for c, v in updates.items()]
        with self.transaction():
            keys = [r[0] for r in self._conn.execute(f"SELECT {pk} FROM {table} WHERE {where}", params)]
            if not keys:
                return []
            placeholders = ", ".join("?" for _ in keys)
            self._conn.execute(
                f"UPDATE {table} SET {assignments} WHERE {pk} IN ({placeholders})",
                values + keys,
            )
            return self._select(table, [(pk, "in", keys)])

    def _delete(self, table, filters):
        where, params = self._where(table, filters)
        with self.transaction():
            return self._conn.execute(f"DELETE FROM {table} WHERE {where}", params).rowcount


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

class SupabaseWorkflowStore(WorkflowStore):
    """Hosted store using the Supabase (PostgREST) client.

    PostgREST offers no multi-statement transactions, so ``apply_review``
    compensates: if the queue side effect does not apply, the approval row
    is restored to its previous values.
    """

    def __init__(self, supabase_url: Optional[str] = None, supabase_key: Optional[str] = None) -> None:
        self._supabase_url = supabase_url or ""
        self._supabase_key = supabase_key or ""
        self._client = None  # Lazy init

    def _get_client(self):
        """Lazy-initialize the Supabase client."""
        if self._client is not None:
            return self._client
        self._supabase_url = self._supabase_url or get_supabase_url()
        self._supabase_key = self._supabase_key or get_supabase_service_key()
        from supabase import create_client

        self._client = create_client(self._supabase_url, self._supabase_key)
        logger.info("Connected to Supabase: %s", self._supabase_url)
        return self._client

    @staticmethod
    def _apply_filters(query, filters: list[Filter]):
        for column, op, value in filters:
            if op == "eq":
                query = query.eq(column, _plain(value))
            elif op == "in":
                query = query.in_(column, _plain(list(value)))
            elif op == "lt":
                query = query.lt(column, _plain(value))
            elif op == "is_null":
                query = query.is_(column, "null")
            else:
                raise ValueError(f"Unsupported filter op: {op}")
        return query

    def _select(self, table, filters, order_by=None, desc=False, limit=None):
        query = self._apply_filters(self._get_client().table(table).select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        return list(query.execute().data or [])

    def _insert(self, table, row):
        from postgrest.exceptions import APIError

        if table == CONTENT_INDEX:
            row = {k: v for k, v in row.items() if k != "id"}
        try:
            result = self._get_client().table(table).insert({k: _plain(v) for k, v in row.items()}).execute()
        except APIError as exc:
            if getattr(exc, "code", None) == "23505":
                raise InvalidState(f"Duplicate {table} record: {exc.message}") from exc
            raise
        return result.data[0]

    def _update(self, table, filters, updates):
        query = self._get_client().table(table).update({k: _plain(v) for k, v in updates.items()})
        return list(self._apply_filters(query, filters).execute().data or [])

    def _delete(self, table, filters):
        query = self._apply_filters(self._get_client().table(table).delete(), filters)
        return len(query.execute().data or [])

    def apply_review(self, approval, approval_updates, queue_item=None, queue_target=None):
        updated = self.compare_and_set_approval(approval.approval_id, [approval.status], approval_updates)
        if updated is None:
            raise InvalidState(f"Approval {approval.approval_id} was modified concurrently")
        if queue_item is None or queue_target is None:
            return updated, None

        queue = self.compare_and_set_queue(queue_item.queue_id, [queue_item.status], {"status": queue_target})
        if queue is None:
            previous = approval.to_row()
            restore = {k: previous[k] for k in approval_updates if k in previous}
            self.compare_and_set_approval(approval.approval_id, [updated.status], restore)
            logger.warning("Restored approval %s after queue update conflict", approval.approval_id)
            raise InvalidState(f"Queue item {queue_item.queue_id} was modified concurrently")
        return updated, queue


def get_store(backend: str | None = None) -> WorkflowStore:
    """Build the configured store (``sqlite`` or ``supabase``)."""
    backend = backend or settings.workflow.store
    if backend == "supabase":
        return SupabaseWorkflowStore()
    if backend == "sqlite":
        return SQLiteWorkflowStore()
    raise ValueError(f"Unknown store backend: {backend}")
