"""Link validation — classify every anchor in rendered content before publish.

Each link is either external (different registrable domain) or internal, in
which case it is resolved against the organization's content index:

    valid          known page on the target site, published
    not_published  known page on the target site, draft/unpublished
    wrong_site     known page, but only on another of the organization's sites
    not_indexed    internal, but unknown to the index
    broken         structurally malformed URL

Broken links always block publishing; wrong-site links block only in strict
mode and are warnings otherwise.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from src.common.logging import setup_logging

from .index import ContentIndex, registrable_domain, slug_of
from .models import (
    AutoFixResult,
    IndexedContent,
    LinkInfo,
    LinkStatus,
    LinkValidationResult,
    ValidatedLink,
)

logger = setup_logging(module_name="link_validator")

_HOST_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")
_SKIP_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
_WEB_SCHEMES = ("http", "https")


def _is_malformed(url: str) -> bool:
    if not url or any(c.isspace() for c in url):
        return True
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a bad port
    except ValueError:
        return True
    if parts.scheme in _WEB_SCHEMES or url.startswith("//"):
        host = parts.hostname
        if not host:
            return True
        try:
            ipaddress.ip_address(host)
            return False
        except ValueError:
            return not _HOST_RE.match(host)
    return False


def _parse_anchors(html: str) -> tuple[BeautifulSoup, list[tuple[int, Tag]]]:
    """Parse ``html`` and return the soup plus (character offset, tag) per ``<a href>``.

    html.parser tolerates unclosed anchors and ``>`` inside attribute values,
    and records where each tag starts.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    line_starts = [0]
    for i, char in enumerate(html or ""):
        if char == "\n":
            line_starts.append(i + 1)

    anchors = []
    for tag in soup.find_all("a", href=True):
        line = tag.sourceline or 1
        offset = line_starts[line - 1] + (tag.sourcepos or 0) if line <= len(line_starts) else 0
        anchors.append((offset, tag))
    return soup, anchors


def _is_absolute(url: str) -> bool:
    parts = urlsplit(url)
    return bool(parts.netloc) or bool(parts.scheme)


class LinkValidator:
    """Validates anchors in HTML content against a ContentIndex.

    Usage:
        validator = LinkValidator(ContentIndex(store.list_content_index(org_id)))
        result = validator.validate_links(html, site_id, "https://blog.example.com")
        if not result.can_publish:
            ...
    """

    def __init__(self, index: ContentIndex) -> None:
        self.index = index

    def extract_links(self, html: str) -> list[LinkInfo]:
        """All anchor occurrences except fragments, javascript:, mailto: and tel:."""
        links: list[LinkInfo] = []
        _, anchors = _parse_anchors(html)
        for position, tag in anchors:
            url = tag["href"].strip()
            if url.lower().startswith(_SKIP_PREFIXES):
                continue
            links.append(LinkInfo(url=url, anchor_text=tag.get_text(" ", strip=True), position=position))
        return links

    def validate_links(
        self,
        content: str,
        target_site_id: str,
        target_site_url: str | None = None,
        strict_mode: bool = False,
    ) -> LinkValidationResult:
        result = LinkValidationResult(strict_mode=strict_mode)
        for link in self.extract_links(content):
            validated = self.validate_link(link, target_site_id, target_site_url)
            result.links.append(validated)
            self._record_message(result, validated)

        logger.info(
            "Link validation for site %s: %d links, %d broken, %d wrong-site, can_publish=%s",
            target_site_id,
            result.total_links,
            result.broken_links,
            result.wrong_site_links,
            result.can_publish,
        )
        return result

    def validate_link(
        self,
        link: LinkInfo,
        target_site_id: str,
        target_site_url: str | None = None,
    ) -> ValidatedLink:
        url = link.url
        if _is_malformed(url):
            return self._result(link, LinkStatus.BROKEN, "Malformed URL")

        if _is_absolute(url):
            parts = urlsplit(url)
            if parts.scheme and parts.scheme not in _WEB_SCHEMES:
                return self._result(link, LinkStatus.EXTERNAL)
            # Pages the organization knows about are never external, whatever their domain
            matches = self.index.find_by_url(url)
            if not matches and self._is_external(parts.hostname or "", target_site_url):
                return self._result(link, LinkStatus.EXTERNAL)
        else:
            matches = self.index.find_by_path(target_site_id, urlsplit(url).path)

        return self._resolve(link, matches, target_site_id)

    def _is_external(self, host: str, target_site_url: str | None) -> bool:
        if target_site_url:
            target_host = urlsplit(target_site_url).hostname or ""
            return registrable_domain(host) != registrable_domain(target_host)
        # Without a target URL, only hosts the index knows about are internal
        return host.lower().removeprefix("www.") not in self.index.hosts()

    def _resolve(
        self,
        link: LinkInfo,
        matches: list[IndexedContent],
        target_site_id: str,
    ) -> ValidatedLink:
        on_target = [m for m in matches if m.site_id == target_site_id]
        if on_target:
            if any(m.is_published for m in on_target):
                return self._result(link, LinkStatus.VALID)
            return self._result(link, LinkStatus.NOT_PUBLISHED, "Link target is not published")

        if matches:
            suggestion = self._equivalent_on_site(matches[0], target_site_id)
            issue = (
                f"Replace with: {suggestion}"
                if suggestion
                else "Link points to a different site. Remove or replace it."
            )
            return self._result(link, LinkStatus.WRONG_SITE, issue, suggestion)

        return self._result(link, LinkStatus.NOT_INDEXED, "Link target not found in the content index")

    def _equivalent_on_site(self, entry: IndexedContent, site_id: str) -> Optional[str]:
        """URL of the single same-slug page on ``site_id``, or None if not exactly one."""
        slug = entry.slug or slug_of(entry.url)
        candidates = {c.url for c in self.index.find_by_slug(site_id, slug)}
        if len(candidates) == 1:
            return candidates.pop()
        return None

    @staticmethod
    def _result(
        link: LinkInfo,
        status: LinkStatus,
        issue: str = "",
        suggested_url: Optional[str] = None,
    ) -> ValidatedLink:
        return ValidatedLink(
            url=link.url,
            anchor_text=link.anchor_text,
            position=link.position,
            status=status,
            issue=issue,
            suggested_url=suggested_url,
        )

    @staticmethod
    def _record_message(result: LinkValidationResult, link: ValidatedLink) -> None:
        label = f'"{link.anchor_text}" -> {link.url}'
        if link.status == LinkStatus.BROKEN:
            result.errors.append(f"Broken link: {label}")
        elif link.status == LinkStatus.WRONG_SITE:
            message = f"Link points to wrong site: {label}"
            (result.errors if result.strict_mode else result.warnings).append(message)
            if link.suggested_url:
                result.warnings.append(f"  Suggested replacement: {link.suggested_url}")
        elif link.status == LinkStatus.NOT_PUBLISHED:
            result.warnings.append(f"Link target not published: {label}")
        elif link.status == LinkStatus.NOT_INDEXED:
            result.warnings.append(f"Link target not indexed: {label}")

    def auto_fix_links(self, content: str, links: list[ValidatedLink]) -> AutoFixResult:
        """Rewrite wrong-site links that have an unambiguous replacement.

        Returns the fixed content plus the wrong-site links left untouched.
        """
        fixable = [l for l in links if l.status == LinkStatus.WRONG_SITE and l.suggested_url]
        unfixable = [l for l in links if l.status == LinkStatus.WRONG_SITE and not l.suggested_url]

        if not fixable:
            return AutoFixResult(content=content, fixed_count=0, unfixable_links=unfixable)

        soup, anchors = _parse_anchors(content)
        by_position = dict(anchors)
        fixed = 0
        for link in fixable:
            tag = by_position.get(link.position)
            if tag is None or tag["href"].strip() != link.url:
                unfixable.append(link)
                continue
            tag["href"] = link.suggested_url
            fixed += 1

        unfixable.sort(key=lambda l: l.position)
        if fixed:
            content = str(soup)
        return AutoFixResult(content=content, fixed_count=fixed, unfixable_links=unfixable)


def generate_report(result: LinkValidationResult) -> str:
    """Render a Markdown summary of a validation result."""
    counts = result.summary()
    lines = [
        "# Link Validation Report",
        "",
        f"**Status:** {'Ready to publish' if result.can_publish else 'Blocked'}",
        "",
        "## Summary",
        f"- Total links: {counts['total']}",
        f"- Valid: {counts[LinkStatus.VALID.value]}",
        f"- External: {counts[LinkStatus.EXTERNAL.value]}",
        f"- Broken: {counts[LinkStatus.BROKEN.value]}",
        f"- Wrong site: {counts[LinkStatus.WRONG_SITE.value]}",
        f"- Not published: {counts[LinkStatus.NOT_PUBLISHED.value]}",
        f"- Not indexed: {counts[LinkStatus.NOT_INDEXED.value]}",
    ]
    if result.errors:
        lines += ["", "## Errors"] + [f"- {e}" for e in result.errors]
    if result.warnings:
        lines += ["", "## Warnings"] + [f"- {w.strip()}" for w in result.warnings]

    problems = [l for l in result.links if not l.is_valid]
    if problems:
        lines += ["", "## Link Details", "", "| Anchor | URL | Status | Suggestion |", "|---|---|---|---|"]
        for link in problems:
            lines.append(
                f"| {link.anchor_text or '-'} | {link.url} | {link.status.value} | {link.suggested_url or '-'} |"
            )
    return "\n".join(lines) + "\n"
