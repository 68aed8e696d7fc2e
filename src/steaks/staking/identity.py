"""Identity resolution: wallet addresses to Farcaster identities.

Lookups run in provider-sized batches, concurrently. A failed batch only
leaves its own addresses unresolved for this run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from steaks.social.client import NeynarClient
from steaks.social.schemas import Identity

logger = structlog.get_logger()


@dataclass
class IdentityBalance:
    """Locked balance summed over every wallet of one identity."""

    identity: Identity
    total_balance: int = 0
    addresses: list[str] = field(default_factory=list)


def _batches(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def resolve_identities(
    social: NeynarClient,
    addresses: list[str] | set[str],
    batch_size: int = 350,
    concurrency: int = 10,
) -> dict[str, Identity]:
    """Map each resolvable address to its identity; the first identity returned wins."""
    ordered = sorted({a.lower() for a in addresses})
    semaphore = asyncio.Semaphore(concurrency)

    async def _resolve(index: int, batch: list[str]) -> dict[str, list[Identity]]:
        async with semaphore:
            try:
                return await social.resolve_by_address(batch)
            except Exception as exc:  # noqa: BLE001
                logger.warning("identity_batch_failed", batch_index=index, size=len(batch), error=str(exc))
                return {}

    pages = await asyncio.gather(*(_resolve(i, b) for i, b in enumerate(_batches(ordered, batch_size))))

    resolved: dict[str, Identity] = {}
    for page in pages:
        for address, identities in page.items():
            key = address.lower()
            if identities and key not in resolved:
                resolved[key] = identities[0]

    logger.info("identities_resolved", addresses=len(ordered), resolved=len(resolved))
    return resolved


def aggregate_by_identity(
    address_balances: dict[str, int],
    identities: dict[str, Identity],
) -> dict[int, IdentityBalance]:
    """Sum balances across every wallet resolved to the same fid; unresolved wallets are dropped."""
    aggregated: dict[int, IdentityBalance] = {}
    for address in sorted(address_balances):
        identity = identities.get(address)
        if identity is None:
            continue
        entry = aggregated.setdefault(identity.fid, IdentityBalance(identity=identity))
        entry.total_balance += address_balances[address]
        entry.addresses.append(address)
    return aggregated


async def fetch_pfps(
    social: NeynarClient,
    fids: list[int] | set[int],
    batch_size: int = 100,
) -> dict[int, str]:
    """Profile picture per fid from bulk user lookups; failed batches are skipped."""
    pfps: dict[int, str] = {}
    for index, batch in enumerate(_batches(sorted(set(fids)), batch_size)):
        try:
            users = await social.fetch_users(batch)
        except Exception as exc:  # noqa: BLE001
            logger.warning("pfp_batch_failed", batch_index=index, size=len(batch), error=str(exc))
            continue
        for user in users:
            pfps[user.fid] = user.pfp_url
    return pfps
