"""User endpoints: HIGHER balance and client-reported unlocks."""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.chain.client import ChainClient
from steaks.dependencies import get_chain, get_db, get_price_feed, get_social
from steaks.leaderboard.repository import CASTER, SUPPORTER, LeaderboardRepository
from steaks.leaderboard.service import caster_stakes
from steaks.notifications.price import PriceFeed
from steaks.social.client import NeynarClient
from steaks.staking.matcher import is_valid_cast_hash, normalize_hash
from steaks.staking.scoring import wei_to_tokens

logger = structlog.get_logger()

router = APIRouter(prefix="/api/user", tags=["Users"])


class AddressBalance(BaseModel):
    address: str
    balance: str
    balance_formatted: str = Field(serialization_alias="balanceFormatted")


class BalanceResponse(BaseModel):
    fid: int
    total_balance: str = Field(serialization_alias="totalBalance")
    total_balance_formatted: str = Field(serialization_alias="totalBalanceFormatted")
    locked_balance: str = Field(serialization_alias="lockedBalance")
    locked_balance_formatted: str = Field(serialization_alias="lockedBalanceFormatted")
    usd_value: str = Field(serialization_alias="usdValue")
    price_per_token: float = Field(serialization_alias="pricePerToken")
    addresses: list[AddressBalance]


class UnlockRequest(BaseModel):
    cast_hash: str = Field(alias="castHash")
    lockup_id: int = Field(alias="lockUpId", ge=0)
    stake_type: str = Field(alias="stakeType", pattern="^(caster|supporter)$")

    @field_validator("cast_hash")
    @classmethod
    def _normalize(cls, value: str) -> str:
        normalized = normalize_hash(value)
        if not is_valid_cast_hash(normalized):
            raise ValueError("invalid cast hash")
        return normalized  # type: ignore[return-value]


def _fmt(wei: int) -> str:
    return f"{wei_to_tokens(wei):,.2f}"


# ---------------------------------------------------------------------------
# GET /user/balance
# ---------------------------------------------------------------------------
@router.get("/balance", response_model=BalanceResponse, response_model_by_alias=True)
async def user_balance(
    fid: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),  # noqa: B008
    chain: ChainClient = Depends(get_chain),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
    price_feed: PriceFeed = Depends(get_price_feed),  # noqa: B008
) -> BalanceResponse:
    """Wallet balance across the identity's verified addresses plus its active caster stakes."""
    try:
        users = await social.fetch_users([fid])
    except httpx.HTTPError as exc:
        logger.warning("balance_user_lookup_failed", fid=fid, error=str(exc))
        raise HTTPException(status_code=502, detail="User lookup failed") from exc
    if not users:
        raise HTTPException(status_code=404, detail="User not found")

    addresses = users[0].verified_addresses
    balances = await chain.token_balances(addresses) if addresses else {}
    total = sum(balances.values())

    locked = 0
    for entry in await LeaderboardRepository(db).for_creator(fid):
        locked += sum(s.amount for s in caster_stakes(entry) if not s.unlocked)

    price = await price_feed.get_price()
    return BalanceResponse(
        fid=fid,
        total_balance=str(total),
        total_balance_formatted=_fmt(total),
        locked_balance=str(locked),
        locked_balance_formatted=_fmt(locked),
        usd_value=f"${wei_to_tokens(total + locked) * price:,.2f}",
        price_per_token=price,
        addresses=[
            AddressBalance(address=a, balance=str(balances.get(a, 0)), balance_formatted=_fmt(balances.get(a, 0)))
            for a in addresses
        ],
    )


# ---------------------------------------------------------------------------
# POST /user/lockup/unlock
# ---------------------------------------------------------------------------
@router.post("/lockup/unlock")
async def report_unlock(
    body: UnlockRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, bool]:
    """Mark a lockup the client has just unlocked, ahead of the next refresh."""
    stake_type = CASTER if body.stake_type == CASTER else SUPPORTER
    touched = await LeaderboardRepository(db).mark_lockup_unlocked(
        body.lockup_id, stake_type=stake_type, cast_hash=body.cast_hash
    )
    if not touched:
        raise HTTPException(status_code=404, detail="Lockup not found")
    logger.info("lockup_unlock_reported", cast_hash=body.cast_hash, lockup_id=body.lockup_id, stake_type=stake_type)
    return {"ok": True}
