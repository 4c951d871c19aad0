"""Tests for mapping posts onto remote collection fields."""

from __future__ import annotations

import pytest

from src.common.errors import SchemaMismatch
from src.publisher.field_mapping import (
    apply_transform,
    build_field_data,
    detect_mappings,
    resolve_mappings,
)
from src.publisher.models import CollectionField, CollectionSchema, FieldMapping, PostPayload


def _schema(*fields: CollectionField) -> CollectionSchema:
    return CollectionSchema(collection_id="col-1", fields=list(fields))


BLOG_SCHEMA = _schema(
    CollectionField("name", type="PlainText", is_required=True),
    CollectionField("slug", type="PlainText", is_required=True),
    CollectionField("post-body", type="RichText"),
    CollectionField("post-summary", type="PlainText"),
    CollectionField("main-image", type="Image"),
    CollectionField("seo-title", type="PlainText"),
    CollectionField("meta-description", type="PlainText"),
    CollectionField("publish-date", type="DateTime"),
)

POST = PostPayload(
    post_id="p-1",
    title="How to Brew Better Coffee",
    content="<p>Fresh beans.</p>",
    excerpt="Fresh beans matter.",
    slug="how-to-brew-better-coffee",
    featured_image="https://cdn.example.com/coffee.jpg",
    featured_image_alt="A cup of coffee",
    seo_title="Better Coffee",
    seo_description="Brew better coffee at home.",
    published_at="2026-03-01T09:30:00Z",
)


class TestDetectMappings:
    def test_blog_schema(self):
        targets = {m.blog_field: m.target_field for m in detect_mappings(BLOG_SCHEMA)}
        assert targets == {
            "title": "name",
            "content": "post-body",
            "excerpt": "post-summary",
            "slug": "slug",
            "featured_image": "main-image",
            "seo_title": "seo-title",
            "seo_description": "meta-description",
            "published_at": "publish-date",
        }

    def test_alternative_slugs(self):
        schema = _schema(CollectionField("title"), CollectionField("body"), CollectionField("thumbnail"))
        targets = {m.blog_field: m.target_field for m in detect_mappings(schema)}
        assert targets == {"title": "title", "content": "body", "featured_image": "thumbnail"}

    def test_no_title_field(self):
        with pytest.raises(SchemaMismatch) as exc_info:
            detect_mappings(_schema(CollectionField("body")))
        assert exc_info.value.details["available_fields"] == ["body"]
        assert exc_info.value.step == "create"


class TestResolveMappings:
    def test_configured_mappings_filtered(self):
        configured = [FieldMapping("title", "name"), FieldMapping("author", "writer")]
        resolved = resolve_mappings(BLOG_SCHEMA, configured)
        assert resolved == [FieldMapping("title", "name")]

    def test_falls_back_to_detection(self):
        assert resolve_mappings(BLOG_SCHEMA, None) == detect_mappings(BLOG_SCHEMA)

    def test_from_dict_accepts_camel_case(self):
        mapping = FieldMapping.from_dict({"blogField": "excerpt", "webflowField": "summary", "transform": "plain-text"})
        assert mapping == FieldMapping("excerpt", "summary", "plain-text")


class TestBuildFieldData:
    def test_detected(self):
        data = build_field_data(POST, detect_mappings(BLOG_SCHEMA), BLOG_SCHEMA)
        assert data["name"] == "How to Brew Better Coffee"
        assert data["slug"] == "how-to-brew-better-coffee"
        assert data["post-body"] == "<p>Fresh beans.</p>"
        assert data["main-image"] == {"url": "https://cdn.example.com/coffee.jpg", "alt": "A cup of coffee"}
        assert data["publish-date"] == "2026-03-01T09:30:00Z"

    def test_empty_values_omitted(self):
        post = PostPayload(post_id="p", title="T", slug="t")
        data = build_field_data(post, detect_mappings(BLOG_SCHEMA), BLOG_SCHEMA)
        assert set(data) == {"name", "slug"}

    def test_missing_required_field(self):
        post = PostPayload(post_id="p", title="T")
        with pytest.raises(SchemaMismatch) as exc_info:
            build_field_data(post, detect_mappings(BLOG_SCHEMA), BLOG_SCHEMA)
        assert exc_info.value.details["missing_fields"] == ["slug"]

    def test_transforms(self):
        mappings = [
            FieldMapping("title", "name"),
            FieldMapping("slug", "slug"),
            FieldMapping("content", "post-summary", "plain-text"),
            FieldMapping("published_at", "publish-date", "date"),
        ]
        data = build_field_data(POST, mappings, BLOG_SCHEMA)
        assert data["post-summary"] == "Fresh beans."
        assert data["publish-date"] == "2026-03-01T09:30:00+00:00"


class TestApplyTransform:
    def test_none(self):
        assert apply_transform("<b>x</b>", "none") == "<b>x</b>"

    def test_bad_date_passes_through(self):
        assert apply_transform("next tuesday", "date") == "next tuesday"
