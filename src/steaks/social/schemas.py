"""Social graph (Farcaster via Neynar) models.

Only the fields the leaderboard uses are modelled; everything else in the
provider's payloads is ignored.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Identity(BaseModel):
    """A Farcaster account and its verified wallets."""

    model_config = ConfigDict(extra="ignore")

    fid: int
    username: str = ""
    display_name: str = ""
    pfp_url: str = ""
    verified_addresses: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.display_name or self.username or f"fid-{self.fid}"

    @classmethod
    def from_neynar(cls, raw: dict[str, Any]) -> Identity:
        """Build from a Neynar user object; addresses are lowercased."""
        verified = raw.get("verified_addresses") or {}
        eth = verified.get("eth_addresses") or []
        return cls(
            fid=int(raw["fid"]),
            username=raw.get("username") or "",
            display_name=raw.get("display_name") or raw.get("username") or "",
            pfp_url=raw.get("pfp_url") or "",
            verified_addresses=[a.lower() for a in eth],
        )


class Post(BaseModel):
    """A cast, flattened to the fields qualification needs."""

    model_config = ConfigDict(extra="ignore")

    hash: str
    text: str = ""
    timestamp: datetime | None = None
    author: Identity
    channel_id: str | None = None
    parent_url: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_neynar(cls, raw: dict[str, Any]) -> Post:
        channel = raw.get("channel") or {}
        return cls(
            hash=raw["hash"].lower(),
            text=raw.get("text") or "",
            timestamp=raw.get("timestamp"),
            author=Identity.from_neynar(raw["author"]),
            channel_id=channel.get("id"),
            parent_url=raw.get("parent_url"),
        )
