"""In-memory index of an organization's known pages, keyed for link lookup."""

from __future__ import annotations

import ipaddress
from collections import defaultdict
from typing import Iterable
from urllib.parse import urlsplit

from .models import IndexedContent

# Two-label public suffixes seen in practice
_SECOND_LEVEL_SUFFIXES = frozenset({
    "co.uk", "org.uk", "ac.uk", "com.au", "net.au", "co.nz",
    "co.jp", "co.kr", "com.br", "com.mx", "co.in", "com.sg",
})


def registrable_domain(host: str) -> str:
    """Approximate registrable domain: last two labels, three for known suffixes."""
    host = (host or "").lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    labels = host.split(".")
    if len(labels) >= 3 and ".".join(labels[-2:]) in _SECOND_LEVEL_SUFFIXES:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def normalize_path(path: str) -> str:
    path = "/" + (path or "").strip().lstrip("/")
    return path.rstrip("/") or "/"


def url_key(url: str) -> tuple[str, str]:
    """(host, path) with www., query, fragment and trailing slash dropped."""
    parts = urlsplit(url.strip())
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host, normalize_path(parts.path)


def slug_of(url_or_path: str) -> str:
    path = normalize_path(urlsplit(url_or_path).path)
    return path.rsplit("/", 1)[-1]


class ContentIndex:
    """Lookup over IndexedContent by full URL, by site path and by site slug."""

    def __init__(self, entries: Iterable[IndexedContent] = ()) -> None:
        self.entries = list(entries)
        self._by_url: dict[tuple[str, str], list[IndexedContent]] = defaultdict(list)
        self._by_site_path: dict[tuple[str, str], list[IndexedContent]] = defaultdict(list)
        self._by_site_slug: dict[tuple[str, str], list[IndexedContent]] = defaultdict(list)
        for entry in self.entries:
            host, path = url_key(entry.url)
            slug = entry.slug or slug_of(entry.url)
            self._by_url[(host, path)].append(entry)
            self._by_site_path[(entry.site_id, path)].append(entry)
            self._by_site_slug[(entry.site_id, slug)].append(entry)

    def __len__(self) -> int:
        return len(self.entries)

    def find_by_url(self, url: str) -> list[IndexedContent]:
        return list(self._by_url.get(url_key(url), []))

    def find_by_path(self, site_id: str, path: str) -> list[IndexedContent]:
        return list(self._by_site_path.get((site_id, normalize_path(path)), []))

    def find_by_slug(self, site_id: str, slug: str) -> list[IndexedContent]:
        return list(self._by_site_slug.get((site_id, slug), []))

    def hosts(self) -> set[str]:
        return {host for host, _ in self._by_url}
