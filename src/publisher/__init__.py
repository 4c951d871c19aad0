# Publisher — field enhancement, field mapping and platform adapters (Webflow)
"""
Publisher module for pushing approved posts to external CMS platforms.

Derives SEO fields (with a deterministic fallback), maps posts onto remote
collection schemas and drives the platform API through a common adapter
contract. Importing this package registers the built-in adapters.
"""

from .field_enhancer import FieldEnhancer
from .models import (
    EnhancedField,
    EnhancedFields,
    FieldMapping,
    PostPayload,
    PublishPlatform,
    PublishResult,
)
from .platforms import PlatformAdapter, create_adapter, supported_platforms
from .webflow import WebflowAdapter, WebflowClient

__all__ = [
    "EnhancedField",
    "EnhancedFields",
    "FieldEnhancer",
    "FieldMapping",
    "PlatformAdapter",
    "PostPayload",
    "PublishPlatform",
    "PublishResult",
    "WebflowAdapter",
    "WebflowClient",
    "create_adapter",
    "supported_platforms",
]
