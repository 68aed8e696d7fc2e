"""Cast qualification: keyphrase match plus /higher channel membership.

A qualifying cast reads "started aiming higher and it worked out! <description>"
and was posted in the /higher channel. A keyphrase match outside the channel
is kept as a weaker signal for display only; it never ranks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from steaks.social.schemas import Post

KEYPHRASE_TEXT = "started aiming higher and it worked out!"
KEYPHRASE_REGEX = re.compile(r"started\s+aiming\s+higher\s+and\s+it\s+worked\s+out!\s*(.+)", re.IGNORECASE)

HIGHER_CHANNEL_ID = "higher"
DESCRIPTION_MAX_LENGTH = 120
TRUNCATION_MARKER = "..."

CAST_HASH_LENGTH = 42
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def extract_description(text: str | None) -> str | None:
    """Return the trimmed text after the keyphrase, or None when absent or empty."""
    if not text:
        return None
    match = KEYPHRASE_REGEX.search(text)
    if not match:
        return None

    description = match.group(1).strip()
    if not description:
        return None
    if len(description) > DESCRIPTION_MAX_LENGTH:
        return description[:DESCRIPTION_MAX_LENGTH] + TRUNCATION_MARKER
    return description


def contains_keyphrase(text: str | None) -> bool:
    return bool(text) and KEYPHRASE_REGEX.search(text) is not None


def is_higher_channel(post: Post) -> bool:
    """True when the post was cast in /higher (channel id or parent URL)."""
    if post.channel_id == HIGHER_CHANNEL_ID:
        return True
    return bool(post.parent_url) and "/higher" in post.parent_url


@dataclass(frozen=True)
class Qualification:
    """Outcome of matching one post."""

    description: str | None
    in_channel: bool

    @property
    def qualifies(self) -> bool:
        """Eligible for ranking: keyphrase with description and channel membership."""
        return self.description is not None and self.in_channel

    @property
    def text_only(self) -> bool:
        """Keyphrase matched outside the channel (display fallback)."""
        return self.description is not None and not self.in_channel


def qualify(post: Post) -> Qualification:
    return Qualification(description=extract_description(post.text), in_channel=is_higher_channel(post))


def is_valid_cast_hash(value: str | None) -> bool:
    """Cast hashes are 0x-prefixed, 42 characters."""
    return isinstance(value, str) and len(value) == CAST_HASH_LENGTH and value.startswith("0x")


def normalize_hash(value: str | None) -> str | None:
    """Lowercase a hash and add the 0x prefix to bare hex; None when unusable."""
    if value is None:
        return None
    h = str(value).strip().lower()
    if not h:
        return None
    if not h.startswith("0x"):
        if not _HEX_RE.match(h):
            return None
        h = f"0x{h}"
    return h
