# Link validator — classify internal links against the content index before publish
"""
Link validation for rendered post content.

Extracts anchors, resolves internal links against the organization's
content index and decides whether the post may be published to a site.
"""

from .index import ContentIndex, registrable_domain
from .models import (
    AutoFixResult,
    IndexedContent,
    LinkInfo,
    LinkStatus,
    LinkValidationResult,
    ValidatedLink,
)
from .validator import LinkValidator, generate_report

__all__ = [
    "AutoFixResult",
    "ContentIndex",
    "IndexedContent",
    "LinkInfo",
    "LinkStatus",
    "LinkValidationResult",
    "LinkValidator",
    "ValidatedLink",
    "generate_report",
    "registrable_domain",
]
