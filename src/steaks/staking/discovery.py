"""Position discovery: every lockup of one token, read at one pinned block.

The count and id enumeration are the base reads; if either fails the run
aborts with ``DiscoveryError``. Detail reads for individual lockups are
best-effort: a failure is logged and that lockup is left out.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

import structlog

from steaks.chain.client import ChainClient, ContractCall
from steaks.errors import DiscoveryError

logger = structlog.get_logger()


@dataclass(frozen=True)
class LockupPosition:
    """One on-chain lockup as read at the snapshot block."""

    lockup_id: int
    token: str
    is_fungible: bool
    unlock_time: int
    unlocked: bool
    amount: int
    receiver: str
    title: str


@dataclass
class PositionSnapshot:
    """All lockups for a token at ``block``."""

    block: int
    total_lockups: int
    lockup_ids: list[int] = field(default_factory=list)
    positions: list[LockupPosition] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)

    def balances_by_receiver(self) -> dict[str, int]:
        """Locked amount per receiving wallet, counting only positions still locked."""
        balances: dict[str, int] = defaultdict(int)
        for position in self.positions:
            if position.unlocked:
                continue
            balances[position.receiver] += position.amount
        return dict(balances)

    def by_receiver(self) -> dict[str, list[LockupPosition]]:
        grouped: dict[str, list[LockupPosition]] = defaultdict(list)
        for position in self.positions:
            grouped[position.receiver].append(position)
        return dict(grouped)

    def by_title(self) -> dict[str, list[LockupPosition]]:
        """Positions grouped by lowercased title (the cast hash they back)."""
        grouped: dict[str, list[LockupPosition]] = defaultdict(list)
        for position in self.positions:
            if position.title:
                grouped[position.title.strip().lower()].append(position)
        return dict(grouped)


def _decode(lockup_id: int, raw: tuple) -> LockupPosition:
    token, is_erc20, unlock_time, unlocked, amount, receiver, title = raw
    return LockupPosition(
        lockup_id=lockup_id,
        token=str(token).lower(),
        is_fungible=bool(is_erc20),
        unlock_time=int(unlock_time),
        unlocked=bool(unlocked),
        amount=int(amount),
        receiver=str(receiver).lower(),
        title=str(title or ""),
    )


async def snapshot_positions(chain: ChainClient, token: str, block: int) -> PositionSnapshot:
    """Read every lockup of ``token`` at ``block``."""
    try:
        total = int(await chain.read_contract("lockUpCount", (), block))
    except Exception as exc:
        raise DiscoveryError(f"lockUpCount read failed at block {block}: {exc}") from exc

    snapshot = PositionSnapshot(block=block, total_lockups=total)
    if total == 0:
        return snapshot

    try:
        ids = await chain.read_contract("getLockUpIdsByToken", (chain.token_address, 1, total), block)
    except Exception as exc:
        raise DiscoveryError(f"getLockUpIdsByToken read failed at block {block}: {exc}") from exc

    snapshot.lockup_ids = [int(i) for i in ids]
    results = await chain.multicall([ContractCall("lockUps", (i,)) for i in snapshot.lockup_ids], block)

    token_lower = token.lower()
    for lockup_id, res in zip(snapshot.lockup_ids, results, strict=True):
        if not res.ok:
            logger.warning("lockup_read_failed", lockup_id=lockup_id, block=block, error=res.error)
            snapshot.failed_ids.append(lockup_id)
            continue
        position = _decode(lockup_id, res.result)
        if position.token != token_lower:
            continue
        snapshot.positions.append(position)

    logger.info(
        "positions_discovered",
        block=block,
        total_lockups=total,
        token_lockups=len(snapshot.lockup_ids),
        positions=len(snapshot.positions),
        failed=len(snapshot.failed_ids),
    )
    return snapshot


async def discover_positions(chain: ChainClient, token: str, as_of_block: int) -> dict[str, int]:
    """Locked amount per receiving wallet for ``token`` at ``as_of_block``."""
    snapshot = await snapshot_positions(chain, token, as_of_block)
    return snapshot.balances_by_receiver()
