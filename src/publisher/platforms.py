"""Platform adapter contract and registry.

Each target CMS implements PlatformAdapter. Adapters are constructed per
request from an organization's integration config via ``create_adapter``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from src.common.errors import PreconditionFailed

from .models import (
    DeleteResult,
    FieldMapping,
    ItemDiagnostics,
    ItemResult,
    PostPayload,
    PublishPlatform,
    SitePublishResult,
)

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[dict[str, Any]], "PlatformAdapter"]

_REGISTRY: dict[PublishPlatform, AdapterFactory] = {}


class PlatformAdapter(ABC):
    """Operations a publishing target must support.

    ``create_or_update_item`` is idempotent on ``platform_post_id``;
    ``delete_item`` is idempotent on the item id.
    """

    PLATFORM: PublishPlatform

    @abstractmethod
    def create_or_update_item(
        self,
        collection_id: str,
        mappings: list[FieldMapping] | None,
        post: PostPayload,
        platform_post_id: Optional[str] = None,
        is_draft: bool = False,
    ) -> ItemResult:
        ...

    @abstractmethod
    def publish_site(self, site_id: str) -> SitePublishResult:
        ...

    @abstractmethod
    def delete_item(self, collection_id: str, item_id: str) -> DeleteResult:
        ...

    @abstractmethod
    def verify_item(self, item_id: str, collection_id: str) -> ItemDiagnostics:
        ...

    @abstractmethod
    def unpublish_item(self, collection_id: str, item_id: str) -> ItemDiagnostics:
        ...

    def build_item_url(self, slug: str, site_url: str = "", site_id: str = "", url_prefix: str = "") -> str:
        base = site_url.rstrip("/")
        path = "/".join(p.strip("/") for p in (url_prefix, slug) if p and p.strip("/"))
        return f"{base}/{path}" if base else path


def register_adapter(platform: PublishPlatform) -> Callable[[type], type]:
    """Class decorator registering ``cls.from_config`` for a platform."""
    def decorator(cls: type) -> type:
        _REGISTRY[platform] = cls.from_config
        return cls
    return decorator


def create_adapter(platform: PublishPlatform | str, config: dict[str, Any]) -> PlatformAdapter:
    """Build the adapter for ``platform`` from integration config.

    Raises:
        PreconditionFailed: No adapter exists for the platform.
    """
    try:
        key = PublishPlatform(platform)
    except ValueError:
        key = None
    factory = _REGISTRY.get(key) if key else None
    if factory is None:
        raise PreconditionFailed(f"Publishing to {platform} is not supported")
    return factory(config)


def supported_platforms() -> list[str]:
    return sorted(p.value for p in _REGISTRY)
