"""Weighted stake: cumulative time-weighted stake in token-days.

    weighted = (principal / 10**18) * (min(as_of, unlock_time) - lock_time) / 86400

Active stakes accrue up to ``as_of``; expired or unlocked stakes are capped at
their unlock time. ``as_of`` is always supplied by the caller.
"""

from __future__ import annotations

TOKEN_DECIMALS = 18
SECONDS_PER_DAY = 86_400


def wei_to_tokens(amount: int) -> float:
    """Convert a wei amount to whole tokens."""
    return amount / 10**TOKEN_DECIMALS


def weighted_stake(principal: int, lock_time: int, unlock_time: int, as_of: int) -> float:
    """Return the stake's token-days as of ``as_of``; 0 for degenerate inputs."""
    if principal <= 0 or lock_time <= 0 or unlock_time <= 0:
        return 0.0

    period = min(as_of, unlock_time) - lock_time
    if period <= 0:
        return 0.0

    return wei_to_tokens(principal) * (period / SECONDS_PER_DAY)


def total_weighted_stake(
    amounts: list[int],
    lock_times: list[int],
    unlock_times: list[int],
    as_of: int,
) -> float:
    """Sum weighted stakes over parallel arrays; missing entries count as 0."""
    total = 0.0
    for i, amount in enumerate(amounts):
        lock_time = lock_times[i] if i < len(lock_times) else 0
        unlock_time = unlock_times[i] if i < len(unlock_times) else 0
        total += weighted_stake(amount, lock_time, unlock_time, as_of)
    return total
