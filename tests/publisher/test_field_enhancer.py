"""Tests for field enhancement and its deterministic fallback."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.common.config import settings
from src.publisher.field_enhancer import (
    DEFAULT_IMAGE_ALT,
    META_DESCRIPTION_MAX,
    SEO_TITLE_MAX,
    FieldEnhancer,
    fallback_fields,
    html_to_text,
    slugify,
    truncate,
)
from src.publisher.models import PostPayload

TITLE = "How to Brew Better Coffee"
CONTENT = "<h2>Intro</h2><p>Fresh beans,   good water.</p>"


def _enhancer(body=None, status=200, error=None):
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        resp = MagicMock()
        resp.status_code = status
        resp.json.return_value = body
        if status >= 400:
            resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
        session.post.return_value = resp
    return FieldEnhancer(api_url="https://writer.example.com/", api_key="secret", session=session), session


# ---------------------------------------------------------------------------
# Fallback helpers
# ---------------------------------------------------------------------------


class TestFallbackHelpers:
    def test_slugify(self):
        assert slugify("How to Brew Better Coffee!") == "how-to-brew-better-coffee"
        assert slugify("  --Hello,   World--  ") == "hello-world"

    def test_slugify_non_ascii_title(self):
        slug = slugify("커피 가이드")
        assert slug.startswith("post-")
        assert len(slug) == len("post-") + 8
        assert slugify("커피 가이드") == slug

    def test_truncate(self):
        assert truncate("  abcdef  ", 3) == "abc"
        assert truncate("ab cd", 3) == "ab"
        assert truncate(None, 5) == ""

    def test_html_to_text(self):
        assert html_to_text(CONTENT) == "Intro Fresh beans, good water."
        assert html_to_text("") == ""

    def test_fallback_fields(self):
        fields = fallback_fields("T" * 80, "<p>" + "word " * 100 + "</p>")
        assert len(fields.seo_title.value) == SEO_TITLE_MAX
        assert len(fields.meta_description.value) <= META_DESCRIPTION_MAX
        assert fields.featured_image_alt.value == DEFAULT_IMAGE_ALT
        assert fields.provider == "none"
        assert fields.is_fallback


# ---------------------------------------------------------------------------
# Enhancer
# ---------------------------------------------------------------------------


class TestFieldEnhancer:
    def test_disabled_makes_no_request(self):
        session = MagicMock()
        enhancer = FieldEnhancer(api_url="", api_key="", session=session)
        fields = enhancer.enhance(TITLE, CONTENT)
        assert not enhancer.enabled
        assert fields.slug.value == "how-to-brew-better-coffee"
        assert fields.provider == "none"
        session.post.assert_not_called()

    def test_success(self):
        enhancer, session = _enhancer({
            "enhanced_fields": {
                "seo_title": "Better Coffee at Home",
                "meta_description": "A short guide to brewing.",
                "slug": "Better Coffee Guide",
                "featured_image_alt": "A cup of coffee",
            },
            "provider": "openai",
            "model": "gpt-4o-mini",
        })

        fields = enhancer.enhance(TITLE, CONTENT, "https://cdn.example.com/c.jpg", ["coffee"])

        assert fields.provider == "llm"
        assert fields.model == "gpt-4o-mini"
        assert fields.seo_title.value == "Better Coffee at Home"
        assert fields.slug.value == "better-coffee-guide"
        assert fields.featured_image_alt.value == "A cup of coffee"

        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "https://writer.example.com" + settings.enhancement.endpoint
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["json"]["enhance_image_alt"] is True
        assert kwargs["json"]["keywords"] == ["coffee"]

    def test_partial_response_merges_with_fallback(self):
        enhancer, _ = _enhancer({"enhanced_fields": {"seo_title": "X" * 90, "slug": "  "}})

        fields = enhancer.enhance(TITLE, CONTENT)

        assert fields.provider == "llm"
        assert fields.seo_title.value == "X" * SEO_TITLE_MAX
        assert fields.seo_title.provider == "llm"
        assert fields.slug.value == "how-to-brew-better-coffee"
        assert fields.slug.provider == "none"
        assert fields.to_dict()["providers"]["meta_description"] == "none"

    def test_no_image_skips_alt_request(self):
        enhancer, session = _enhancer({"enhanced_fields": {}})
        fields = enhancer.enhance(TITLE, CONTENT)
        assert session.post.call_args.kwargs["json"]["enhance_image_alt"] is False
        assert fields.provider == "none"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"error": requests.Timeout("timed out")},
            {"error": requests.ConnectionError("refused")},
            {"body": {}, "status": 500},
            {"body": {"unexpected": True}},
            {"body": ["not", "an", "object"]},
        ],
        ids=["timeout", "connection", "server-error", "missing-fields", "wrong-shape"],
    )
    def test_failures_fall_back(self, kwargs):
        enhancer, _ = _enhancer(**kwargs)
        fields = enhancer.enhance(TITLE, CONTENT)
        assert fields.provider == "none"
        assert fields.slug.value == "how-to-brew-better-coffee"
        assert fields.meta_description.value == "Intro Fresh beans, good water."

    def test_invalid_json_falls_back(self):
        enhancer, session = _enhancer({})
        session.post.return_value.json.side_effect = ValueError("not json")
        assert enhancer.enhance(TITLE, CONTENT).provider == "none"


class TestPayloadEnhancements:
    def test_explicit_slug_wins(self):
        post = PostPayload(post_id="p", title=TITLE, slug="keep-me")
        enhanced = post.with_enhancements(fallback_fields(TITLE, CONTENT))
        assert enhanced.slug == "keep-me"
        assert enhanced.seo_title == TITLE
        assert enhanced.seo_description == "Intro Fresh beans, good water."

    def test_empty_description_keeps_excerpt(self):
        post = PostPayload(post_id="p", title=TITLE, excerpt="Short excerpt")
        enhanced = post.with_enhancements(fallback_fields(TITLE, ""))
        assert enhanced.seo_description == "Short excerpt"
        assert enhanced.slug == "how-to-brew-better-coffee"
