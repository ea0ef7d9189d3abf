"""OAuth scope lists (RFC 6749 section 3.3).

A ``ScopeSet`` keeps the caller's order for the string form and compares as
a set. Checks against the configured allowlist and a granted set are pure
functions over the value; nothing here touches storage.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

# scope-token = 1*( %x21 / %x23-5B / %x5D-7E )
SCOPE_TOKEN_RE = re.compile(r"[\x21\x23-\x5B\x5D-\x7E]+")


def parse_scope(claim: Any) -> list[str]:
    """Normalize a scope value (space-delimited string or list) to tokens.

    Duplicates are dropped, first occurrence wins.

    Example:
        >>> parse_scope("read  write read")
        ['read', 'write']
        >>> parse_scope(None)
        []
    """
    if claim is None:
        return []
    if isinstance(claim, str):
        raw = claim.split()
    elif isinstance(claim, Iterable):
        raw = [str(item).strip() for item in claim]
    else:
        return []
    return list(dict.fromkeys(token for token in raw if token))


def is_valid_scope_token(token: str) -> bool:
    return SCOPE_TOKEN_RE.fullmatch(token) is not None


@dataclass(frozen=True)
class ScopeSet:
    """An ordered, duplicate-free list of scope tokens.

    Example:
        >>> requested = ScopeSet.parse("read")
        >>> requested.is_subset_of(ScopeSet.parse("read write"))
        True
        >>> str(ScopeSet.parse(["read", "write"]))
        'read write'
    """

    tokens: tuple[str, ...] = ()

    @classmethod
    def parse(cls, value: Any) -> ScopeSet:
        if isinstance(value, ScopeSet):
            return value
        return cls(tuple(parse_scope(value)))

    def __iter__(self) -> Iterator[str]:
        return iter(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __bool__(self) -> bool:
        return bool(self.tokens)

    def __contains__(self, token: object) -> bool:
        return token in self.tokens

    def __str__(self) -> str:
        return " ".join(self.tokens)

    def to_claim(self) -> str | None:
        """Space-delimited ``scope`` claim, or None when empty (claim omitted)."""
        return str(self) if self.tokens else None

    def to_list(self) -> list[str]:
        return list(self.tokens)

    def invalid_tokens(self) -> list[str]:
        return [token for token in self.tokens if not is_valid_scope_token(token)]

    def is_well_formed(self) -> bool:
        return not self.invalid_tokens()

    def is_allowed(self, allowlist: Collection[str] | None) -> bool:
        """True when every token is in ``allowlist``; a None allowlist allows all."""
        if allowlist is None:
            return True
        return set(self.tokens) <= set(allowlist)

    def is_subset_of(self, granted: ScopeSet | Iterable[str]) -> bool:
        """True when every token was granted. An empty set is a subset of anything."""
        return set(self.tokens) <= set(granted)

    def display_names(self, names: Mapping[str, str]) -> list[tuple[str, str]]:
        """Pair each token with its consent-screen label, falling back to the token."""
        return [(token, names.get(token, token)) for token in self.tokens]
