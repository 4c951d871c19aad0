"""Shared test fixtures for the content-ops workflow."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional

import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.common.errors import WorkflowError
from src.publisher.field_enhancer import FieldEnhancer
from src.publisher.models import (
    DeleteResult,
    FieldMapping,
    ItemDiagnostics,
    ItemResult,
    PostPayload,
    PublishPlatform,
    SitePublishResult,
)
from src.publisher.platforms import PlatformAdapter
from src.workflow.models import Integration, PlatformPublishingRecord, Post
from src.workflow.permissions import Principal
from src.workflow.store import SQLiteWorkflowStore

ORG_ID = "org-1"
SITE_ID = "site-a"
SITE_URL = "https://blog.example.com"


class FakeAdapter(PlatformAdapter):
    """In-memory platform adapter that records every call.

    Set ``fail_on`` to a method name and ``error`` to the exception it
    should raise.
    """

    PLATFORM = PublishPlatform.WEBFLOW

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.items: dict[str, dict[str, Any]] = {}
        self.fail_on: set[str] = set()
        self.error: Exception = WorkflowError("remote failure")
        self._next_id = 1

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise self.error

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def create_or_update_item(
        self,
        collection_id: str,
        mappings: list[FieldMapping] | None,
        post: PostPayload,
        platform_post_id: Optional[str] = None,
        is_draft: bool = False,
    ) -> ItemResult:
        self._record(
            "create_or_update_item",
            collection_id=collection_id,
            post=post,
            platform_post_id=platform_post_id,
            is_draft=is_draft,
        )
        if platform_post_id:
            self.items[platform_post_id] = {"post": post, "is_draft": is_draft}
            return ItemResult(item_id=platform_post_id, created=False, is_draft=is_draft)
        item_id = f"item-{self._next_id}"
        self._next_id += 1
        self.items[item_id] = {"post": post, "is_draft": is_draft}
        return ItemResult(item_id=item_id, created=True, is_draft=is_draft)

    def publish_site(self, site_id: str) -> SitePublishResult:
        self._record("publish_site", site_id=site_id)
        return SitePublishResult(site_id=site_id, published=True)

    def delete_item(self, collection_id: str, item_id: str) -> DeleteResult:
        self._record("delete_item", collection_id=collection_id, item_id=item_id)
        self.items.pop(item_id, None)
        return DeleteResult(deleted=True, item_id=item_id)

    def verify_item(self, item_id: str, collection_id: str) -> ItemDiagnostics:
        self._record("verify_item", item_id=item_id, collection_id=collection_id)
        item = self.items.get(item_id)
        if item is None:
            return ItemDiagnostics(item_id=item_id, exists=False)
        return ItemDiagnostics(
            item_id=item_id,
            exists=True,
            is_draft=item["is_draft"],
            last_published=None if item["is_draft"] else "2026-01-01T00:00:00Z",
        )

    def unpublish_item(self, collection_id: str, item_id: str) -> ItemDiagnostics:
        self._record("unpublish_item", collection_id=collection_id, item_id=item_id)
        if item_id in self.items:
            self.items[item_id]["is_draft"] = True
        return ItemDiagnostics(item_id=item_id, exists=True, is_draft=True)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def store(tmp_path):
    """Provide a SQLite workflow store on a temporary database."""
    s = SQLiteWorkflowStore(str(tmp_path / "test_content_ops.db"))
    yield s
    s.close()


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="user-admin", org_id=ORG_ID, role="admin")


@pytest.fixture
def editor() -> Principal:
    return Principal(user_id="user-editor", org_id=ORG_ID, role="editor")


@pytest.fixture
def writer() -> Principal:
    return Principal(user_id="user-writer", org_id=ORG_ID, role="writer")


@pytest.fixture
def outsider() -> Principal:
    """An admin of a different organization."""
    return Principal(user_id="user-other", org_id="org-2", role="admin")


@pytest.fixture
def post(store) -> Post:
    return store.save_post(
        Post(
            org_id=ORG_ID,
            title="How to Brew Better Coffee",
            content='<p>Start with fresh beans. See <a href="/guides/grinders">our grinder guide</a>.</p>',
            excerpt="Fresh beans, good water, patience.",
            featured_image="https://cdn.example.com/coffee.jpg",
            keywords=["coffee", "brewing"],
            author="Dana",
        )
    )


@pytest.fixture
def integration(store) -> Integration:
    return store.save_integration(
        Integration(
            org_id=ORG_ID,
            platform=PublishPlatform.WEBFLOW,
            config={
                "api_key": "wf-test-key",
                "collection_id": "col-1",
                "site_id": SITE_ID,
                "site_url": SITE_URL,
                "url_prefix": "blog",
            },
        )
    )


@pytest.fixture
def record(store, post, integration) -> PlatformPublishingRecord:
    return store.create_publishing(
        PlatformPublishingRecord(org_id=ORG_ID, post_id=post.post_id, platform=PublishPlatform.WEBFLOW)
    )


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def enhancer() -> FieldEnhancer:
    """Enhancer with no service configured: always the derived fallback."""
    return FieldEnhancer(api_url="", api_key="")
