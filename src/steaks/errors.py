"""Domain exceptions.

Transient failures (one RPC read, one lookup batch, one identity) never
surface here: they are logged and skipped where they happen. What remains
is fatal for the unit of work that raised it.
"""

from __future__ import annotations


class SteaksError(Exception):
    """Base class for all Higher Steaks errors."""


class StructuralError(SteaksError):
    """A pipeline run cannot proceed; nothing is committed."""


class DiscoveryError(StructuralError):
    """The lockup count or id enumeration read failed."""


class StaleBlockError(StructuralError):
    """The RPC never served a block within the freshness threshold."""

    def __init__(self, block_age: int | None, attempts: int) -> None:
        self.block_age = block_age
        self.attempts = attempts
        super().__init__(f"RPC block is stale after {attempts} attempts (age: {block_age}s)")


class InvariantViolation(SteaksError):
    """An upstream aggregation bug was detected before commit."""


class DuplicateIdentityError(InvariantViolation):
    """The same fid survived into the ranked top-N more than once."""

    def __init__(self, fids: list[int]) -> None:
        self.fids = fids
        super().__init__(f"Duplicate identities in ranked leaderboard: {sorted(fids)}")


class SignatureError(SteaksError):
    """An inbound webhook failed authentication."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
