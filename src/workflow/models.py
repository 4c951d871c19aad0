"""Persisted workflow records.

Each model maps to one table row. ``to_row()`` serializes for insert/update,
``from_row()`` accepts a row dict whose JSON columns are already decoded.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.link_validator.models import IndexedContent
from src.publisher.models import FieldMapping, PostPayload, PublishPlatform

from .status import ApprovalStatus, PlatformStatus, QueueStatus, SyncStatus

# oldest entries are dropped past this many
HISTORY_LIMIT = 50


def utc_now(offset_seconds: float = 0.0) -> str:
    """ISO-8601 UTC timestamp with fixed precision, so strings sort by time."""
    moment = datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
    return moment.isoformat(timespec="microseconds")


def new_id() -> str:
    return str(uuid.uuid4())


class _Row(BaseModel):
    model_config = {"use_enum_values": False}

    def to_row(self) -> dict[str, Any]:
        """Serialize for the store; enums become their values."""
        return self.model_dump(mode="json")

    @classmethod
    def from_row(cls, row: dict[str, Any]):
        return cls.model_validate({k: v for k, v in row.items() if k in cls.model_fields})


class ErrorInfo(BaseModel):
    """Structured error persisted on a record."""
    code: str
    message: str
    step: Optional[str] = None


class Post(_Row):
    """Maps to the `blog_posts` table."""
    post_id: str = Field(default_factory=new_id)
    org_id: str
    title: str
    content: str = ""
    excerpt: str = ""
    slug: str = ""
    featured_image: str = ""
    featured_image_alt: str = ""
    seo_title: str = ""
    seo_description: str = ""
    keywords: list[str] = Field(default_factory=list)
    author: str = ""
    published_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    def to_payload(self) -> PostPayload:
        return PostPayload(
            post_id=self.post_id,
            title=self.title,
            content=self.content,
            excerpt=self.excerpt,
            slug=self.slug,
            featured_image=self.featured_image,
            featured_image_alt=self.featured_image_alt,
            seo_title=self.seo_title,
            seo_description=self.seo_description,
            keywords=list(self.keywords),
            author=self.author,
            published_at=self.published_at,
        )


class GenerationQueueItem(_Row):
    """Maps to the `blog_generation_queue` table."""
    queue_id: str = Field(default_factory=new_id)
    org_id: str
    created_by: str
    topic: str
    keywords: list[str] = Field(default_factory=list)
    priority: int = Field(default=5, ge=1, le=10)
    status: QueueStatus = QueueStatus.PENDING
    post_id: Optional[str] = None
    generated_title: Optional[str] = None
    generated_content: Optional[str] = None
    generation_error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)


class ApprovalRecord(_Row):
    """Maps to the `blog_approvals` table."""
    approval_id: str = Field(default_factory=new_id)
    org_id: str
    queue_id: Optional[str] = None
    post_id: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    requested_by: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    revision_number: int = 1
    previous_approval_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)


class PlatformPublishingRecord(_Row):
    """Maps to the `blog_platform_publishing` table.

    ``platform_post_id`` is set exactly while a remote item exists.
    ``sync_metadata`` holds the current attempt's step progress under
    ``progress`` and an audit trail of prior states under ``history``.
    """
    publishing_id: str = Field(default_factory=new_id)
    org_id: str
    post_id: str
    queue_id: Optional[str] = None
    platform: PublishPlatform = PublishPlatform.WEBFLOW
    status: PlatformStatus = PlatformStatus.PENDING
    platform_post_id: Optional[str] = None
    platform_url: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.NOT_SYNCED
    retry_count: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    last_retry_at: Optional[str] = None
    last_synced_at: Optional[str] = None
    published_at: Optional[str] = None
    published_by: Optional[str] = None
    sync_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        if not self.error_code and not self.error_message:
            return None
        step = (self.sync_metadata.get("last_error") or {}).get("step")
        return ErrorInfo(code=self.error_code or "", message=self.error_message or "", step=step)

    @property
    def progress(self) -> dict[str, Any]:
        return dict(self.sync_metadata.get("progress") or {})

    def metadata_with(self, **changes: Any) -> dict[str, Any]:
        """Copy of sync_metadata with top-level keys replaced."""
        meta = dict(self.sync_metadata)
        meta.update(changes)
        return meta

    def history_entry(self, event: str, **extra: Any) -> dict[str, Any]:
        entry = {
            "event": event,
            "at": utc_now(),
            "status": self.status.value,
            "platform_post_id": self.platform_post_id,
            "platform_url": self.platform_url,
            "sync_status": self.sync_status.value,
        }
        if self.error_code:
            entry["error_code"] = self.error_code
        entry.update(extra)
        return entry

    def metadata_with_history(self, event: str, **extra: Any) -> dict[str, Any]:
        meta = dict(self.sync_metadata)
        history = list(meta.get("history") or []) + [self.history_entry(event, **extra)]
        meta["history"] = history[-HISTORY_LIMIT:]
        return meta


class Integration(_Row):
    """Maps to the `integrations` table. Read-only for the workflow."""
    integration_id: str = Field(default_factory=new_id)
    org_id: str
    platform: PublishPlatform = PublishPlatform.WEBFLOW
    status: str = "active"
    config: dict[str, Any] = Field(default_factory=dict)
    field_mappings: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def collection_id(self) -> str:
        return self.config.get("collection_id", "")

    @property
    def site_id(self) -> str:
        return self.config.get("site_id", "")

    @property
    def site_url(self) -> str:
        return self.config.get("site_url", "")

    @property
    def url_prefix(self) -> str:
        return self.config.get("url_prefix", "")

    @property
    def mappings(self) -> list[FieldMapping]:
        return [FieldMapping.from_dict(m) for m in self.field_mappings]

    def missing_config(self) -> list[str]:
        return [key for key in ("api_key", "collection_id", "site_id") if not self.config.get(key)]


class ContentIndexEntry(_Row):
    """Maps to the `content_index` table."""
    org_id: str
    site_id: str
    url: str
    slug: str = ""
    title: str = ""
    is_published: bool = True

    def to_indexed(self) -> IndexedContent:
        return IndexedContent(
            site_id=self.site_id,
            url=self.url,
            slug=self.slug,
            title=self.title,
            is_published=self.is_published,
        )


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TaskOperation(str, Enum):
    PUBLISH = "publish"
    REPUBLISH = "republish"
    RETRY = "retry"
    UNPUBLISH = "unpublish"
    DELETE_FROM_PLATFORM = "delete_from_platform"
    DELETE_AND_FORGET = "delete_and_forget"


class PublishTask(_Row):
    """Maps to the `publish_tasks` table.

    ``principal`` is the caller identity captured at enqueue time, so the
    worker acts with the requester's permissions and organization.
    """
    task_id: str = Field(default_factory=new_id)
    org_id: str
    publishing_id: str
    operation: TaskOperation
    status: TaskStatus = TaskStatus.QUEUED
    idempotency_key: str
    principal: dict[str, Any] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    worker_id: Optional[str] = None
    lease_expires_at: Optional[str] = None
    last_error: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
