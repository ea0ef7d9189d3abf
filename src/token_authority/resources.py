"""Resource indicators (RFC 8707).

A resource indicator is an absolute ``http``/``https`` URI with a host and no
fragment. Requested indicators must be on the configured allowlist and a
subset of what the grant approved; the effective set becomes the token
audience.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

ALLOWED_SCHEMES = frozenset({"http", "https"})


def is_valid_resource_uri(uri: Any) -> bool:
    """Return True for absolute http(s) URIs with a host and no fragment.

    Example:
        >>> is_valid_resource_uri("https://api.example.com/v1")
        True
        >>> is_valid_resource_uri("https://api.example.com/#section")
        False
        >>> is_valid_resource_uri("urn:example:api")
        False
    """
    if not isinstance(uri, str) or not uri:
        return False
    if any(char.isspace() or ord(char) < 0x20 for char in uri):
        return False
    try:
        parsed = urlsplit(uri)
        hostname = parsed.hostname
        _ = parsed.port  # ValueError on a non-numeric port
    except ValueError:
        return False
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False
    if not hostname:
        return False
    return not parsed.fragment


def parse_resources(value: Any) -> list[str]:
    """Normalize one URI or a list of URIs, dropping blanks and duplicates."""
    if value is None:
        return []
    if isinstance(value, str):
        raw = [value]
    elif isinstance(value, Iterable):
        raw = [item if isinstance(item, str) else str(item) for item in value]
    else:
        return []
    return list(dict.fromkeys(item.strip() for item in raw if item and item.strip()))


@dataclass(frozen=True)
class ResourceSet:
    """An ordered, duplicate-free list of resource indicator URIs.

    Example:
        >>> granted = ResourceSet.parse(["https://api.example.com", "https://files.example.com"])
        >>> ResourceSet.parse("https://api.example.com").is_subset_of(granted)
        True
    """

    uris: tuple[str, ...] = ()

    @classmethod
    def parse(cls, value: Any) -> ResourceSet:
        if isinstance(value, ResourceSet):
            return value
        return cls(tuple(parse_resources(value)))

    def __iter__(self) -> Iterator[str]:
        return iter(self.uris)

    def __len__(self) -> int:
        return len(self.uris)

    def __bool__(self) -> bool:
        return bool(self.uris)

    def __contains__(self, uri: object) -> bool:
        return uri in self.uris

    def to_list(self) -> list[str]:
        return list(self.uris)

    def invalid_uris(self) -> list[str]:
        return [uri for uri in self.uris if not is_valid_resource_uri(uri)]

    def is_well_formed(self) -> bool:
        return not self.invalid_uris()

    def is_allowed(self, allowlist: Collection[str] | None) -> bool:
        """True when every URI is in ``allowlist``; a None allowlist allows all."""
        if allowlist is None:
            return True
        return set(self.uris) <= set(allowlist)

    def is_subset_of(self, granted: ResourceSet | Iterable[str]) -> bool:
        return set(self.uris) <= set(granted)

    def to_audience(self, default_audience: str) -> str | list[str]:
        """The ``aud`` claim: the single resource, the list, or the default audience."""
        if not self.uris:
            return default_audience
        if len(self.uris) == 1:
            return self.uris[0]
        return list(self.uris)
