"""Stake-expired and supporter notifications.

Each send is guarded by the dedup ledger keyed on (type, fid, reference).
The ledger record is written only after a successful delivery; the two
steps are not atomic, so a crash in between can repeat one notification on
the next run. Rejected tokens are disabled rather than retried.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx
import structlog

from steaks.db.models import LeaderboardEntry
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.ledger import STAKE_EXPIRED, SUPPORTER_ADDED, NotificationLedger
from steaks.notifications.price import PriceFeed
from steaks.staking.scoring import wei_to_tokens

logger = structlog.get_logger()


def format_token_amount(amount: float) -> str:
    """Two decimals with K/M/B suffixes: 1234.5 -> '1.23K'."""
    if amount >= 1_000_000_000:
        return f"{amount / 1_000_000_000:.2f}B"
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"{amount / 1_000:.2f}K"
    return f"{amount:.2f}"


@dataclass
class Notifier:
    """Sends deduplicated notifications through the mini-app channel."""

    ledger: NotificationLedger
    channel: NotificationChannel
    price_feed: PriceFeed
    app_url: str = "https://higher-steaks.vercel.app"
    min_supporter_usd: float = 10.0

    async def _deliver(self, fid: int, title: str, body: str, target_url: str) -> bool:
        token = await self.ledger.enabled_token(fid)
        if token is None:
            logger.debug("notification_no_token", fid=fid)
            return False

        notification_id = f"higher-steaks-{int(time.time() * 1000)}-{fid}"
        try:
            result = await self.channel.send(
                token.notification_url, notification_id, title, body, target_url, [token.token]
            )
        except httpx.HTTPError as exc:
            logger.warning("notification_send_failed", fid=fid, error=str(exc))
            return False

        if result.token_rejected:
            await self.ledger.disable_token(fid, token.token)
            logger.info("notification_token_disabled", fid=fid, status=result.status_code)
            return False
        for invalid in result.invalid_tokens:
            await self.ledger.disable_token(fid, invalid)
        return result.delivered

    async def send_stake_expired(self, fid: int, lockup_id: int, amount: float, cast_owner_username: str) -> bool:
        """Tell ``fid`` their stake ``lockup_id`` has run its course. Sent at most once per lockup."""
        reference_id = str(lockup_id)
        if await self.ledger.has_been_sent(STAKE_EXPIRED, fid, reference_id):
            return False

        title = "Higher Steak Cooked!"
        body = (
            f"Your stake of {format_token_amount(amount)} HIGHER on @{cast_owner_username} has completed. "
            "Withdraw now to continue supporting others!"
        )
        target_url = f"{self.app_url}?fid={fid}"

        if not await self._deliver(fid, title, body, target_url):
            return False
        await self.ledger.mark_sent(STAKE_EXPIRED, fid, reference_id)
        logger.info("stake_expired_notified", fid=fid, lockup_id=lockup_id)
        return True

    async def send_supporter(
        self,
        cast_owner_fid: int,
        supporter_fid: int,
        supporter_username: str,
        amount: float,
        cast_hash: str,
        description: str,
    ) -> bool:
        """Tell a cast owner someone staked on their cast, if worth at least the USD minimum."""
        if supporter_fid == cast_owner_fid:
            return False

        price = await self.price_feed.get_price()
        if amount * price < self.min_supporter_usd:
            logger.debug("supporter_below_minimum", cast_hash=cast_hash, usd=amount * price)
            return False

        reference_id = f"{cast_hash}-{supporter_fid}"
        if await self.ledger.has_been_sent(SUPPORTER_ADDED, cast_owner_fid, reference_id):
            return False

        title = f"@{supporter_username} is supporting you!"
        body = (
            f"@{supporter_username} just staked {format_token_amount(amount)} HIGHER on your cast: {description}"
        )
        target_url = f"{self.app_url}/cast/{cast_hash}"

        if not await self._deliver(cast_owner_fid, title, body, target_url):
            return False
        await self.ledger.mark_sent(SUPPORTER_ADDED, cast_owner_fid, reference_id)
        logger.info("supporter_notified", cast_hash=cast_hash, owner_fid=cast_owner_fid, supporter_fid=supporter_fid)
        return True

    async def _expire_group(
        self,
        entry: LeaderboardEntry,
        lockup_ids: list[int],
        amounts: list[str],
        unlock_times: list[int],
        unlocked: list[bool],
        fids: list[int] | None,
        as_of: int,
    ) -> int:
        owner = entry.creator_username or f"user-{entry.creator_fid}"
        sent = 0
        for i, lockup_id in enumerate(lockup_ids):
            unlock_time = unlock_times[i] if i < len(unlock_times) else 0
            is_unlocked = unlocked[i] if i < len(unlocked) else False
            if not unlock_time or unlock_time > as_of or is_unlocked:
                continue
            fid = fids[i] if fids is not None and i < len(fids) else entry.creator_fid
            if not fid:
                continue
            amount = wei_to_tokens(int(amounts[i])) if i < len(amounts) else 0.0
            if await self.send_stake_expired(fid, lockup_id, amount, owner):
                sent += 1
        return sent

    async def sweep_expired(self, repo: LeaderboardRepository, as_of: int) -> int:
        """Notify owners of every stored stake past its unlock time and still locked."""
        sent = 0
        for entry in await repo.all_entries():
            sent += await self._expire_group(
                entry,
                entry.caster_stake_lockup_ids,
                entry.caster_stake_amounts,
                entry.caster_stake_unlock_times,
                entry.caster_stake_unlocked,
                None,
                as_of,
            )
            sent += await self._expire_group(
                entry,
                entry.supporter_stake_lockup_ids,
                entry.supporter_stake_amounts,
                entry.supporter_stake_unlock_times,
                entry.supporter_stake_unlocked,
                entry.supporter_stake_fids,
                as_of,
            )
        logger.info("expired_sweep_complete", sent=sent)
        return sent
