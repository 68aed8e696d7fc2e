"""Weighted-stake scoring."""

import pytest

from steaks.staking.scoring import SECONDS_PER_DAY, total_weighted_stake, wei_to_tokens, weighted_stake

WEI = 10**18


class TestWeightedStake:
    def test_active_stake_accrues_to_as_of(self) -> None:
        """10 tokens locked for 2 days so far = 20 token-days."""
        lock = 1_000_000
        assert weighted_stake(10 * WEI, lock, lock + 30 * SECONDS_PER_DAY, lock + 2 * SECONDS_PER_DAY) == pytest.approx(
            20.0
        )

    def test_expired_stake_capped_at_unlock(self) -> None:
        lock = 1_000_000
        unlock = lock + 3 * SECONDS_PER_DAY
        assert weighted_stake(5 * WEI, lock, unlock, unlock + 100 * SECONDS_PER_DAY) == pytest.approx(15.0)

    @pytest.mark.parametrize(
        ("principal", "lock_time", "unlock_time"),
        [(0, 1, 2), (WEI, 0, 2), (WEI, 1, 0), (-WEI, 1, 2)],
    )
    def test_degenerate_inputs_score_zero(self, principal: int, lock_time: int, unlock_time: int) -> None:
        assert weighted_stake(principal, lock_time, unlock_time, 10_000) == 0.0

    def test_as_of_before_lock_scores_zero(self) -> None:
        assert weighted_stake(WEI, 5_000, 9_000, 4_000) == 0.0

    def test_deterministic(self) -> None:
        args = (7 * WEI, 1_000, 1_000 + SECONDS_PER_DAY, 50_000)
        assert weighted_stake(*args) == weighted_stake(*args)


class TestTotals:
    def test_sums_parallel_arrays(self) -> None:
        lock = 1_000
        total = total_weighted_stake(
            [WEI, 2 * WEI],
            [lock, lock],
            [lock + SECONDS_PER_DAY, lock + SECONDS_PER_DAY],
            lock + SECONDS_PER_DAY,
        )
        assert total == pytest.approx(3.0)

    def test_missing_lock_times_count_zero(self) -> None:
        assert total_weighted_stake([WEI, WEI], [1_000], [1_000 + SECONDS_PER_DAY] * 2, 10**9) == pytest.approx(1.0)

    def test_wei_to_tokens(self) -> None:
        assert wei_to_tokens(1_500_000_000_000_000_000) == 1.5
