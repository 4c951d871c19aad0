"""Data models for link validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class LinkStatus(str, Enum):
    VALID = "valid"
    BROKEN = "broken"
    WRONG_SITE = "wrong_site"
    NOT_PUBLISHED = "not_published"
    NOT_INDEXED = "not_indexed"
    EXTERNAL = "external"


@dataclass
class LinkInfo:
    """One anchor occurrence. ``position`` is the character offset of the opening tag."""
    url: str
    anchor_text: str
    position: int


@dataclass
class ValidatedLink:
    url: str
    anchor_text: str
    position: int
    status: LinkStatus
    issue: str = ""
    suggested_url: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status in (LinkStatus.VALID, LinkStatus.EXTERNAL)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["is_valid"] = self.is_valid
        return data


@dataclass
class IndexedContent:
    """A page or CMS item known to belong to one of the organization's sites."""
    site_id: str
    url: str
    slug: str = ""
    title: str = ""
    is_published: bool = True


@dataclass
class LinkValidationResult:
    links: list[ValidatedLink] = field(default_factory=list)
    strict_mode: bool = False
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def count(self, status: LinkStatus) -> int:
        return sum(1 for link in self.links if link.status == status)

    @property
    def total_links(self) -> int:
        return len(self.links)

    @property
    def broken_links(self) -> int:
        return self.count(LinkStatus.BROKEN)

    @property
    def wrong_site_links(self) -> int:
        return self.count(LinkStatus.WRONG_SITE)

    @property
    def can_publish(self) -> bool:
        if self.broken_links:
            return False
        return not (self.strict_mode and self.wrong_site_links)

    @property
    def is_valid(self) -> bool:
        return all(link.is_valid for link in self.links)

    def summary(self) -> dict[str, int]:
        counts = {status.value: self.count(status) for status in LinkStatus}
        counts["total"] = self.total_links
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_publish": self.can_publish,
            "is_valid": self.is_valid,
            "strict_mode": self.strict_mode,
            "counts": self.summary(),
            "links": [link.to_dict() for link in self.links],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass
class AutoFixResult:
    content: str
    fixed_count: int = 0
    unfixable_links: list[ValidatedLink] = field(default_factory=list)
