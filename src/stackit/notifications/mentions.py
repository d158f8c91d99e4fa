"""@mention extraction from free-text content."""

from __future__ import annotations

import re

# "@" followed by word characters; the token ends at the first non-word char
MENTION_RE = re.compile(r"@([A-Za-z0-9_]+)")


def ordered_mentions(text: str | None) -> list[str]:
    """Return mentioned usernames in order of first appearance, without duplicates."""
    if not text:
        return []
    return list(dict.fromkeys(MENTION_RE.findall(text)))


def extract_mentions(text: str | None) -> set[str]:
    """Return the distinct usernames mentioned in ``text`` (case-sensitive, no leading ``@``)."""
    return set(ordered_mentions(text))
