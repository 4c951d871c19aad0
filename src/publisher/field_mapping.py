"""Map an internal post onto a remote CMS collection's field slugs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from src.common.errors import STEP_CREATE, SchemaMismatch

from .field_enhancer import html_to_text
from .models import CollectionSchema, FieldMapping, PostPayload

logger = logging.getLogger(__name__)

# Candidate remote slugs per internal field, most specific first
CANDIDATE_FIELDS: dict[str, list[str]] = {
    "title": ["name", "title", "post-title"],
    "content": ["post-body", "body", "content", "post-content", "main-content"],
    "excerpt": ["post-summary", "excerpt", "summary", "description"],
    "slug": ["slug"],
    "featured_image": ["main-image", "featured-image", "post-image", "image", "thumbnail"],
    "featured_image_alt": ["main-image-alt", "featured-image-alt", "image-alt"],
    "seo_title": ["seo-title", "meta-title"],
    "seo_description": ["seo-description", "meta-description"],
    "author": ["author", "author-name"],
    "published_at": ["publish-date", "published-date", "date", "published-at"],
}

TRANSFORMS = ("none", "plain-text", "date")


def detect_mappings(schema: CollectionSchema) -> list[FieldMapping]:
    """Pick the first candidate slug present in the schema for each post field.

    Raises:
        SchemaMismatch: The collection has no name/title field.
    """
    mappings: list[FieldMapping] = []
    used: set[str] = set()
    for blog_field, candidates in CANDIDATE_FIELDS.items():
        for slug in candidates:
            if slug in schema.slugs and slug not in used:
                mappings.append(FieldMapping(blog_field, slug))
                used.add(slug)
                break

    if not any(m.blog_field == "title" for m in mappings):
        raise SchemaMismatch(
            f"Collection {schema.collection_id} has no name/title field",
            step=STEP_CREATE,
            details={"available_fields": sorted(schema.slugs)},
        )
    return mappings


def resolve_mappings(
    schema: CollectionSchema,
    configured: list[FieldMapping] | None = None,
) -> list[FieldMapping]:
    """Use configured mappings when given, dropping targets the schema lacks."""
    if not configured:
        return detect_mappings(schema)

    resolved = []
    for mapping in configured:
        if mapping.target_field not in schema.slugs:
            logger.warning(
                "Mapped field '%s' not in collection %s, skipping",
                mapping.target_field,
                schema.collection_id,
            )
            continue
        resolved.append(mapping)
    return resolved


def apply_transform(value: Any, transform: str) -> Any:
    if transform == "plain-text":
        return html_to_text(str(value))
    if transform == "date":
        text = str(value)
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
        except ValueError:
            logger.warning("Unparseable date value '%s', sending as-is", text)
            return text
    return value


def build_field_data(
    post: PostPayload,
    mappings: list[FieldMapping],
    schema: CollectionSchema,
) -> dict[str, Any]:
    """Build the remote ``fieldData`` object for a post.

    Image fields are sent as ``{"url", "alt"}`` objects. Empty values are
    omitted.

    Raises:
        SchemaMismatch: A required remote field ends up without a value.
    """
    field_data: dict[str, Any] = {}
    for mapping in mappings:
        value = getattr(post, mapping.blog_field, None)
        if value in (None, "", []):
            continue

        remote = schema.get(mapping.target_field)
        if remote is not None and remote.is_image:
            value = {"url": str(value), "alt": post.featured_image_alt or post.title}
        else:
            value = apply_transform(value, mapping.transform)
        field_data[mapping.target_field] = value

    missing = [f.slug for f in schema.required_fields if f.slug not in field_data]
    if missing:
        raise SchemaMismatch(
            f"Required collection fields have no mapped value: {', '.join(missing)}",
            step=STEP_CREATE,
            details={"missing_fields": missing, "collection_id": schema.collection_id},
        )
    return field_data
