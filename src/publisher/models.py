"""Data models for the publisher module."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Optional

PROVIDER_LLM = "llm"
PROVIDER_NONE = "none"


class PublishPlatform(str, Enum):
    """Supported publishing platforms."""
    WEBFLOW = "webflow"


@dataclass
class EnhancedField:
    """One derived value and the provider that produced it."""
    value: str
    provider: str = PROVIDER_NONE


@dataclass
class EnhancedFields:
    """SEO fields derived from raw post content."""
    seo_title: EnhancedField
    meta_description: EnhancedField
    slug: EnhancedField
    featured_image_alt: EnhancedField
    model: str = ""

    @property
    def provider(self) -> str:
        """``llm`` when the service produced any field, else ``none``."""
        providers = {
            self.seo_title.provider,
            self.meta_description.provider,
            self.slug.provider,
            self.featured_image_alt.provider,
        }
        return PROVIDER_LLM if PROVIDER_LLM in providers else PROVIDER_NONE

    @property
    def is_fallback(self) -> bool:
        return self.provider == PROVIDER_NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "seo_title": self.seo_title.value,
            "meta_description": self.meta_description.value,
            "slug": self.slug.value,
            "featured_image_alt": self.featured_image_alt.value,
            "provider": self.provider,
            "model": self.model,
            "providers": {
                "seo_title": self.seo_title.provider,
                "meta_description": self.meta_description.provider,
                "slug": self.slug.provider,
                "featured_image_alt": self.featured_image_alt.provider,
            },
        }


@dataclass
class PostPayload:
    """Internal post representation handed to platform adapters."""
    post_id: str
    title: str
    content: str = ""
    excerpt: str = ""
    slug: str = ""
    featured_image: str = ""
    featured_image_alt: str = ""
    seo_title: str = ""
    seo_description: str = ""
    keywords: list[str] = field(default_factory=list)
    author: str = ""
    published_at: Optional[str] = None

    def with_enhancements(self, fields: EnhancedFields) -> PostPayload:
        """Return a copy with derived SEO fields applied.

        An explicit slug already on the post wins so republished items keep
        their URL. Derived values replace SEO title, description and alt text.
        """
        return replace(
            self,
            slug=self.slug or fields.slug.value,
            seo_title=fields.seo_title.value or self.seo_title or self.title,
            seo_description=fields.meta_description.value or self.seo_description or self.excerpt,
            featured_image_alt=fields.featured_image_alt.value or self.featured_image_alt,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FieldMapping:
    """Maps one internal post field onto one remote collection field slug."""
    blog_field: str
    target_field: str
    transform: str = "none"  # none | plain-text | date

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldMapping:
        return cls(
            blog_field=data.get("blog_field") or data["blogField"],
            target_field=data.get("target_field") or data.get("webflow_field") or data["webflowField"],
            transform=data.get("transform", "none"),
        )


@dataclass
class CollectionField:
    """One field of a remote CMS collection schema."""
    slug: str
    display_name: str = ""
    type: str = "PlainText"
    is_required: bool = False

    @property
    def is_image(self) -> bool:
        return self.type in ("Image", "ImageRef")


@dataclass
class CollectionSchema:
    """Remote collection schema used for field mapping."""
    collection_id: str
    fields: list[CollectionField] = field(default_factory=list)

    def get(self, slug: str) -> Optional[CollectionField]:
        for f in self.fields:
            if f.slug == slug:
                return f
        return None

    @property
    def slugs(self) -> set[str]:
        return {f.slug for f in self.fields}

    @property
    def required_fields(self) -> list[CollectionField]:
        return [f for f in self.fields if f.is_required]


@dataclass
class ItemResult:
    """Outcome of a create-or-update call."""
    item_id: str
    created: bool
    is_draft: bool = False
    field_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SitePublishResult:
    """Outcome of a site-wide publish."""
    site_id: str
    published: bool
    published_at: str = ""


@dataclass
class DeleteResult:
    deleted: bool
    item_id: str


@dataclass
class ItemDiagnostics:
    """Read-only visibility check of a remote item."""
    item_id: str
    exists: bool
    is_draft: bool = False
    is_archived: bool = False
    last_published: Optional[str] = None
    last_updated: Optional[str] = None

    @property
    def is_published(self) -> bool:
        return self.exists and not self.is_draft and not self.is_archived and bool(self.last_published)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["is_published"] = self.is_published
        return data


@dataclass
class PublishResult:
    """Result returned to callers of a publish request."""
    success: bool
    platform: PublishPlatform
    item_id: str = ""
    published: bool = False
    url: str = ""
    site_published: bool = False
    warning: str = ""
    diagnostics: Optional[ItemDiagnostics] = None

    def to_response(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "itemId": self.item_id,
            "published": self.published,
            "url": self.url,
            "sitePublished": self.site_published,
        }
        if self.warning:
            result["warning"] = self.warning
        return {"success": self.success, "result": result}


def payload_hash(post: PostPayload, is_draft: bool = False) -> str:
    """Stable hash of what would be sent for a post, used to skip redundant updates."""
    blob = json.dumps({"post": post.to_dict(), "isDraft": is_draft}, sort_keys=True, default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]
