"""Webflow Data API v2 client and platform adapter.

Endpoints used (bearer auth):
    GET    /collections/{collection_id}
    POST   /collections/{collection_id}/items
    GET    /collections/{collection_id}/items/{item_id}
    PATCH  /collections/{collection_id}/items/{item_id}
    DELETE /collections/{collection_id}/items/{item_id}
    POST   /sites/{site_id}/publish
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from src.common.config import settings
from src.common.errors import (
    STEP_CREATE,
    STEP_DELETE,
    STEP_PUBLISH_SITE,
    STEP_UNPUBLISH,
    PreconditionFailed,
    RemoteItemMissing,
    UpstreamError,
)
from src.common.http_client import HTTPClient
from src.common.logging import setup_logging

from .field_mapping import build_field_data, resolve_mappings
from .models import (
    CollectionField,
    CollectionSchema,
    DeleteResult,
    FieldMapping,
    ItemDiagnostics,
    ItemResult,
    PostPayload,
    PublishPlatform,
    SitePublishResult,
)
from .platforms import PlatformAdapter, register_adapter

logger = setup_logging(module_name="publisher.webflow")


class WebflowClient:
    """Thin wrapper over the Webflow v2 REST API."""

    def __init__(self, api_key: str, http: HTTPClient | None = None) -> None:
        if not api_key:
            raise PreconditionFailed("Webflow API key not configured for this organization")
        self._http = http or HTTPClient(
            settings.webflow.api_base,
            headers={"Authorization": f"Bearer {api_key}", "accept-version": "2.0.0"},
            timeout=settings.webflow.timeout_seconds,
            requests_per_minute=settings.webflow.requests_per_minute,
            max_retries=settings.webflow.max_retries,
        )

    def get_collection(self, collection_id: str, step: str | None = None) -> CollectionSchema:
        data = self._http.get(f"collections/{collection_id}", step=step).json()
        fields = [
            CollectionField(
                slug=f.get("slug", ""),
                display_name=f.get("displayName", ""),
                type=f.get("type", "PlainText"),
                is_required=bool(f.get("isRequired", False)),
            )
            for f in data.get("fields", [])
        ]
        return CollectionSchema(collection_id=collection_id, fields=fields)

    def create_item(self, collection_id: str, field_data: dict[str, Any], is_draft: bool = False) -> dict:
        body = {"isArchived": False, "isDraft": is_draft, "fieldData": field_data}
        return self._http.post(f"collections/{collection_id}/items", json=body, step=STEP_CREATE).json()

    def update_item(
        self,
        collection_id: str,
        item_id: str,
        field_data: dict[str, Any] | None = None,
        is_draft: bool | None = None,
        step: str = STEP_CREATE,
    ) -> dict:
        body: dict[str, Any] = {}
        if field_data is not None:
            body["fieldData"] = field_data
        if is_draft is not None:
            body["isDraft"] = is_draft
        return self._http.patch(f"collections/{collection_id}/items/{item_id}", json=body, step=step).json()

    def get_item(self, collection_id: str, item_id: str, step: str | None = None) -> Optional[dict]:
        """Fetch an item, or None when Webflow reports 404."""
        try:
            return self._http.get(f"collections/{collection_id}/items/{item_id}", step=step).json()
        except UpstreamError as exc:
            if exc.status_code == 404:
                return None
            raise

    def delete_item(self, collection_id: str, item_id: str) -> bool:
        """Delete an item. Returns False when it was already gone."""
        try:
            self._http.delete(f"collections/{collection_id}/items/{item_id}", step=STEP_DELETE)
        except UpstreamError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    def publish_site(self, site_id: str, custom_domains: list[str] | None = None) -> dict:
        body: dict[str, Any] = {"publishToWebflowSubdomain": True}
        if custom_domains:
            body["customDomains"] = custom_domains
        resp = self._http.post(f"sites/{site_id}/publish", json=body, step=STEP_PUBLISH_SITE)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            # the publish is queued on any 2xx; the body is informational
            logger.warning("Site %s publish returned a non-JSON body", site_id)
            return {}

    def close(self) -> None:
        self._http.close()


def _diagnostics(item_id: str, item: Optional[dict]) -> ItemDiagnostics:
    if item is None:
        return ItemDiagnostics(item_id=item_id, exists=False)
    return ItemDiagnostics(
        item_id=item.get("id", item_id),
        exists=True,
        is_draft=bool(item.get("isDraft", False)),
        is_archived=bool(item.get("isArchived", False)),
        last_published=item.get("lastPublished"),
        last_updated=item.get("lastUpdated"),
    )


@register_adapter(PublishPlatform.WEBFLOW)
class WebflowAdapter(PlatformAdapter):
    """Publishes posts as Webflow CMS collection items."""

    PLATFORM = PublishPlatform.WEBFLOW

    def __init__(self, client: WebflowClient, custom_domains: list[str] | None = None) -> None:
        self.client = client
        self.custom_domains = custom_domains or []

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> WebflowAdapter:
        return cls(
            WebflowClient(config.get("api_key", "")),
            custom_domains=config.get("custom_domains") or [],
        )

    def create_or_update_item(
        self,
        collection_id: str,
        mappings: list[FieldMapping] | None,
        post: PostPayload,
        platform_post_id: Optional[str] = None,
        is_draft: bool = False,
    ) -> ItemResult:
        """Create the item, or update it in place when it already exists.

        Raises:
            SchemaMismatch: A required collection field cannot be filled.
            RemoteItemMissing: ``platform_post_id`` points at a deleted item.
            UpstreamError: The API call failed.
        """
        schema = self.client.get_collection(collection_id, step=STEP_CREATE)
        field_data = build_field_data(post, resolve_mappings(schema, mappings), schema)

        if platform_post_id:
            try:
                item = self.client.update_item(collection_id, platform_post_id, field_data, is_draft)
            except UpstreamError as exc:
                if exc.status_code == 404:
                    raise RemoteItemMissing(
                        f"Webflow item {platform_post_id} no longer exists",
                        step=STEP_CREATE,
                        details={"previous_item_id": platform_post_id},
                    ) from exc
                raise
            logger.info("Updated Webflow item %s in collection %s", platform_post_id, collection_id)
            return ItemResult(item_id=platform_post_id, created=False, is_draft=is_draft, field_data=field_data)

        item = self.client.create_item(collection_id, field_data, is_draft)
        item_id = item.get("id")
        if not item_id:
            raise UpstreamError("Webflow create returned no item id", step=STEP_CREATE)
        logger.info("Created Webflow item %s in collection %s", item_id, collection_id)
        return ItemResult(item_id=item_id, created=True, is_draft=is_draft, field_data=field_data)

    def publish_site(self, site_id: str) -> SitePublishResult:
        if not site_id:
            raise PreconditionFailed("Webflow site id not configured", step=STEP_PUBLISH_SITE)
        self.client.publish_site(site_id, self.custom_domains)
        logger.info("Published Webflow site %s", site_id)
        return SitePublishResult(
            site_id=site_id,
            published=True,
            published_at=datetime.now(timezone.utc).isoformat(),
        )

    def delete_item(self, collection_id: str, item_id: str) -> DeleteResult:
        if not item_id:
            raise PreconditionFailed("No platform item id to delete", step=STEP_DELETE)
        existed = self.client.delete_item(collection_id, item_id)
        if not existed:
            logger.info("Webflow item %s already absent", item_id)
        return DeleteResult(deleted=True, item_id=item_id)

    def verify_item(self, item_id: str, collection_id: str) -> ItemDiagnostics:
        return _diagnostics(item_id, self.client.get_item(collection_id, item_id))

    def unpublish_item(self, collection_id: str, item_id: str) -> ItemDiagnostics:
        """Mark the item as draft, preserving its field data."""
        item = self.client.get_item(collection_id, item_id, step=STEP_UNPUBLISH)
        if item is None:
            raise RemoteItemMissing(
                f"Webflow item {item_id} no longer exists",
                step=STEP_UNPUBLISH,
                details={"previous_item_id": item_id},
            )
        updated = self.client.update_item(
            collection_id,
            item_id,
            field_data=item.get("fieldData", {}),
            is_draft=True,
            step=STEP_UNPUBLISH,
        )
        return _diagnostics(item_id, updated)

    def build_item_url(self, slug: str, site_url: str = "", site_id: str = "", url_prefix: str = "") -> str:
        if not site_url and site_id:
            site_url = f"https://{site_id}.webflow.io"
        return super().build_item_url(slug, site_url=site_url, url_prefix=url_prefix)
