"""Archive name helpers and the default key-only resolver.

``KeyResolver`` accepts raw 64-character hex keys and ``dat://<key>`` URLs.
It performs no network lookups; human-readable names need a resolver
supplied by the caller.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from datlib.engine.interfaces import ResolvedName
from datlib.errors import NameResolutionError

SCHEME = "dat"
KEY_PATTERN = re.compile(r"^[0-9a-f]{64}$", re.IGNORECASE)


def is_archive_key(value: str) -> bool:
    return bool(KEY_PATTERN.match(value))


def archive_url(key: str) -> str:
    return f"{SCHEME}://{key.lower()}"


def extract_host(name: str) -> str:
    """Return the host part of a URL, or the name itself when it has no scheme."""
    name = name.strip()
    if "://" not in name:
        return name.split("/", 1)[0]
    parts = urlsplit(name)
    return parts.hostname or ""


class KeyResolver:
    """Resolves names that already carry their archive key."""

    async def resolve(self, name: str) -> str:
        host = extract_host(name)
        if not is_archive_key(host):
            raise NameResolutionError(name, "not an archive key")
        return host.lower()

    async def resolve_url(self, name: str) -> ResolvedName:
        address = await self.resolve(name)
        return ResolvedName(address=address, url=archive_url(address))
