"""Base chain reads via web3's async client.

Every read can be pinned to a block number so that a discovery run sees a
single consistent snapshot. Each RPC call is bounded by ``timeout``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3

from steaks.chain.abi import ERC20_ABI, LOCKUP_ABI

logger = structlog.get_logger()

T = TypeVar("T")

LOCKUP = "lockup"
TOKEN = "token"


@dataclass(frozen=True)
class BlockInfo:
    number: int
    timestamp: int


@dataclass(frozen=True)
class ContractCall:
    """One read in a multicall batch."""

    function: str
    args: tuple[Any, ...] = ()
    contract: str = LOCKUP


@dataclass(frozen=True)
class CallResult:
    """Per-call outcome of a multicall: ``result`` when ok, else ``error``."""

    ok: bool
    result: Any = None
    error: str | None = None


class ChainClient:
    """Lockup contract and token reads against one RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        lockup_address: str,
        token_address: str,
        timeout: float = 20.0,
        concurrency: int = 25,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.timeout = timeout
        self.token_address = AsyncWeb3.to_checksum_address(token_address)
        self._contracts = {
            LOCKUP: self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(lockup_address), abi=LOCKUP_ABI),
            TOKEN: self.w3.eth.contract(address=self.token_address, abi=ERC20_ABI),
        }
        self._semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        async with asyncio.timeout(self.timeout):
            return await awaitable

    async def get_block(self, block: int | str = "latest") -> BlockInfo:
        raw = await self._bounded(self.w3.eth.get_block(block))
        return BlockInfo(number=int(raw["number"]), timestamp=int(raw["timestamp"]))

    async def read_contract(
        self,
        function: str,
        args: tuple[Any, ...] = (),
        block: int | None = None,
        contract: str = LOCKUP,
    ) -> Any:  # noqa: ANN401
        """Call a view function, optionally pinned to ``block``."""
        fn = self._contracts[contract].get_function_by_name(function)(*args)
        return await self._bounded(fn.call(block_identifier=block if block is not None else "latest"))

    async def multicall(self, calls: list[ContractCall], block: int | None = None) -> list[CallResult]:
        """Run many reads concurrently at one block; failures are reported per call."""

        async def _one(call: ContractCall) -> CallResult:
            async with self._semaphore:
                try:
                    value = await self.read_contract(call.function, call.args, block, call.contract)
                except Exception as exc:  # noqa: BLE001
                    return CallResult(ok=False, error=str(exc) or type(exc).__name__)
                return CallResult(ok=True, result=value)

        return list(await asyncio.gather(*(_one(c) for c in calls)))

    async def token_balances(self, addresses: list[str], block: int | None = None) -> dict[str, int]:
        """ERC-20 wallet balances; unreadable addresses are omitted."""
        calls = [
            ContractCall("balanceOf", (AsyncWeb3.to_checksum_address(a),), contract=TOKEN) for a in addresses
        ]
        results = await self.multicall(calls, block)
        balances: dict[str, int] = {}
        for address, res in zip(addresses, results, strict=True):
            if res.ok:
                balances[address.lower()] = int(res.result)
            else:
                logger.warning("balance_read_failed", address=address, error=res.error)
        return balances

    async def lockup_created_times(
        self,
        lockup_ids: list[int],
        from_block: int,
        to_block: int,
        chunk_size: int = 10_000,
    ) -> dict[int, int]:
        """Block timestamps of the ``LockUpCreated`` logs for ``lockup_ids``.

        Scans backwards from ``to_block`` in chunks and stops as soon as every
        id has been found. Ids never found are absent from the result.
        """
        pending = set(lockup_ids)
        found: dict[int, int] = {}
        block_times: dict[int, int] = {}
        event = self._contracts[LOCKUP].events.LockUpCreated

        end = to_block
        while pending and end >= from_block:
            start = max(from_block, end - chunk_size + 1)
            logs = await self._bounded(
                event.get_logs(
                    argument_filters={"lockUpId": sorted(pending)},
                    from_block=start,
                    to_block=end,
                )
            )
            for log in logs:
                lockup_id = int(log["args"]["lockUpId"])
                if lockup_id not in pending:
                    continue
                block_number = int(log["blockNumber"])
                if block_number not in block_times:
                    block_times[block_number] = (await self.get_block(block_number)).timestamp
                found[lockup_id] = block_times[block_number]
                pending.discard(lockup_id)
            end = start - 1

        if pending:
            logger.info("lock_times_not_found", count=len(pending))
        return found
