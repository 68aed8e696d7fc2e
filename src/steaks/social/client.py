"""Neynar REST v2 client for the reads the leaderboard needs."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from steaks.social.schemas import Identity, Post

logger = structlog.get_logger()


class NeynarClient:
    """Thin async wrapper over the Neynar Farcaster API.

    Every method raises ``httpx.HTTPError`` on transport or status failure;
    callers decide whether a failure is isolated or fatal.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.neynar.com/v2/farcaster",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"accept": "application/json", "x-api-key": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def resolve_by_address(self, addresses: list[str]) -> dict[str, list[Identity]]:
        """Bulk address lookup (one provider page). Keys are lowercased addresses."""
        if not addresses:
            return {}
        data = await self._get(
            "/user/bulk-by-address",
            {"addresses": ",".join(addresses), "address_types": "verified_address,custody_address"},
        )
        resolved: dict[str, list[Identity]] = {}
        for address, users in data.items():
            if not isinstance(users, list):
                continue
            resolved[address.lower()] = [Identity.from_neynar(u) for u in users]
        return resolved

    async def fetch_users(self, fids: list[int]) -> list[Identity]:
        """Bulk user lookup by fid (one provider page)."""
        if not fids:
            return []
        data = await self._get("/user/bulk", {"fids": ",".join(str(f) for f in fids)})
        return [Identity.from_neynar(u) for u in data.get("users", [])]

    async def fetch_posts_for_user(self, fid: int, limit: int = 25) -> list[Post]:
        """Most recent casts by ``fid``, newest first."""
        data = await self._get("/feed/user/casts", {"fid": fid, "limit": limit, "include_replies": "false"})
        return [Post.from_neynar(c) for c in data.get("casts", [])]

    async def lookup_cast(self, cast_hash: str) -> Post | None:
        """Look up a single cast by hash; None when the provider does not know it."""
        try:
            data = await self._get("/cast", {"identifier": cast_hash, "type": "hash"})
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            raise
        cast = data.get("cast")
        return Post.from_neynar(cast) if cast else None
