"""Field enhancement — derive SEO title, meta description, slug and alt text.

Calls the Blog Writer API ``enhance-fields`` endpoint. Enhancement is an
enrichment step only: any failure (timeout, non-2xx, malformed body) is
logged and answered with deterministic fallback values, never raised.
"""

from __future__ import annotations

import hashlib
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup
from pydantic import BaseModel, ValidationError

from src.common.config import get_enhancement_api_key, get_enhancement_api_url, settings
from src.common.logging import setup_logging

from .models import PROVIDER_LLM, PROVIDER_NONE, EnhancedField, EnhancedFields

logger = setup_logging(module_name="publisher.field_enhancer")

SEO_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160
DEFAULT_IMAGE_ALT = "Featured image"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")


class _EnhancedFieldsBody(BaseModel):
    seo_title: Optional[str] = None
    meta_description: Optional[str] = None
    slug: Optional[str] = None
    featured_image_alt: Optional[str] = None


class _EnhancementResponse(BaseModel):
    enhanced_fields: _EnhancedFieldsBody
    provider: Optional[str] = None
    model: Optional[str] = None


# ---------------------------------------------------------------------------
# Deterministic fallbacks
# ---------------------------------------------------------------------------

def truncate(text: str, limit: int) -> str:
    return (text or "").strip()[:limit].rstrip()


def html_to_text(content: str) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    if not content:
        return ""
    text = BeautifulSoup(content, "lxml").get_text(" ", strip=True)
    return _WHITESPACE_RE.sub(" ", text).strip()


def slugify(title: str) -> str:
    """Lowercase, runs of non-alphanumerics collapsed to one hyphen, trimmed.

    Titles with no ASCII alphanumerics get a short stable hash slug.
    """
    slug = _NON_ALNUM_RE.sub("-", (title or "").lower()).strip("-")
    if slug:
        return slug
    return "post-" + hashlib.md5((title or "").encode("utf-8")).hexdigest()[:8]


def fallback_fields(title: str, content: str) -> EnhancedFields:
    return EnhancedFields(
        seo_title=EnhancedField(truncate(title, SEO_TITLE_MAX)),
        meta_description=EnhancedField(truncate(html_to_text(content), META_DESCRIPTION_MAX)),
        slug=EnhancedField(slugify(title)),
        featured_image_alt=EnhancedField(DEFAULT_IMAGE_ALT),
    )


# ---------------------------------------------------------------------------
# Enhancer
# ---------------------------------------------------------------------------

class FieldEnhancer:
    """Client for the external field enhancement service.

    Usage:
        enhancer = FieldEnhancer()
        fields = enhancer.enhance(title, html, featured_image_url=url)
        fields.provider  # "llm" or "none"
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = (get_enhancement_api_url() if api_url is None else api_url).rstrip("/")
        self.api_key = get_enhancement_api_key() if api_key is None else api_key
        self.timeout = timeout or settings.enhancement.timeout_seconds
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    def enhance(
        self,
        title: str,
        content: str,
        featured_image_url: str | None = None,
        keywords: list[str] | None = None,
    ) -> EnhancedFields:
        """Return provider-tagged SEO fields; falls back instead of raising."""
        fallback = fallback_fields(title, content)
        if not self.enabled:
            logger.info("Enhancement service not configured, using fallback fields")
            return fallback

        payload = {
            "title": title,
            "content": content,
            "featured_image_url": featured_image_url,
            "keywords": keywords or [],
            "enhance_seo_title": True,
            "enhance_meta_description": True,
            "enhance_slug": True,
            "enhance_image_alt": bool(featured_image_url),
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            resp = self._session.post(
                f"{self.api_url}{settings.enhancement.endpoint}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = _EnhancementResponse.model_validate(resp.json())
        except requests.RequestException as exc:
            logger.warning("Enhancement request failed, using fallback fields: %s", exc)
            return fallback
        except (ValueError, ValidationError) as exc:
            logger.warning("Malformed enhancement response, using fallback fields: %s", exc)
            return fallback

        return self._merge(body, fallback)

    @staticmethod
    def _merge(body: _EnhancementResponse, fallback: EnhancedFields) -> EnhancedFields:
        """Take each field from the service when present, else the fallback."""
        enhanced = body.enhanced_fields

        def pick(value: Optional[str], default: EnhancedField, limit: int | None = None) -> EnhancedField:
            value = (value or "").strip()
            if not value:
                return default
            return EnhancedField(value[:limit] if limit else value, PROVIDER_LLM)

        slug = slugify(enhanced.slug) if enhanced.slug and enhanced.slug.strip() else ""
        return EnhancedFields(
            seo_title=pick(enhanced.seo_title, fallback.seo_title, SEO_TITLE_MAX),
            meta_description=pick(enhanced.meta_description, fallback.meta_description, META_DESCRIPTION_MAX),
            slug=EnhancedField(slug, PROVIDER_LLM) if slug else fallback.slug,
            featured_image_alt=pick(enhanced.featured_image_alt, fallback.featured_image_alt),
            model=body.model or "",
        )
