# /basegas/core/rpc.py
# RPC collaborator used by the gas engine: a minimal interface plus a
# multi-node AsyncWeb3 implementation with read failover.
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiohttp
from web3 import AsyncWeb3

from basegas.core.config import settings
from basegas.core.decorators import retriable_network_call
from basegas.core.logger import get_logger
from basegas.core.models import BlockUtilization

log = get_logger(__name__)

T = TypeVar("T")


class RpcUnavailableError(ConnectionError):
    """Every configured RPC node failed to answer a read."""


class MalformedBlockError(ValueError):
    pass


async def with_deadline(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    """Awaits with an optional deadline in seconds; None waits for the collaborator's own timeout."""
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)


class Deadline:
    """
    One time budget shared by every collaborator call an operation makes.

    ``timeout`` bounds the whole operation, not each call: every call is given
    whatever is left of the budget, so failover and sequential reads cannot
    stretch it.
    """
    def __init__(self, timeout: Optional[float]):
        self.expires_at = None if timeout is None else asyncio.get_running_loop().time() + timeout

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(self.expires_at - asyncio.get_running_loop().time(), 0.0)

    @property
    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0


def parse_block_utilization(block: Any) -> BlockUtilization:
    try:
        return BlockUtilization(gas_used=int(block["gasUsed"]), gas_limit=int(block["gasLimit"]))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedBlockError(f"Latest block is missing gas figures: {e}") from e


class RpcCollaborator:
    """
    The three calls the gas engine needs from a node.
    Every call takes an optional deadline in seconds.
    """
    async def get_gas_price(self, timeout: Optional[float] = None) -> int:
        raise NotImplementedError

    async def estimate_gas(self, transaction: Dict[str, Any], timeout: Optional[float] = None) -> int:
        """Simulated gas cost. Must raise if the transaction would revert."""
        raise NotImplementedError

    async def get_latest_block(self, timeout: Optional[float] = None) -> BlockUtilization:
        raise NotImplementedError


class ResilientGasRpc(RpcCollaborator):
    def __init__(self, rpc_urls: Optional[List[str]] = None, request_timeout: Optional[float] = None):
        self.rpc_urls = rpc_urls or settings.resolved_rpc_urls()
        request_timeout = request_timeout or settings.RPC_TIMEOUT_SECONDS
        if len(self.rpc_urls) < 2:
            log.warning("RESILIENCE_DEGRADED_LT_2_RPCS", count=len(self.rpc_urls))

        self.providers: List[AsyncWeb3] = [
            AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)}))
            for url in self.rpc_urls
        ]
        self.primary_provider = self.providers[0] if self.providers else None

    async def initialize(self):
        """Drops unreachable nodes. Raises ConnectionError if none answer."""
        reachable = []
        for provider in self.providers:
            if await provider.is_connected():
                reachable.append(provider)
            else:
                log.warning("RPC_NODE_UNREACHABLE", url=provider.provider.endpoint_uri)
        if not reachable:
            raise ConnectionError("All RPC nodes are unreachable.")
        self.providers = reachable
        self.primary_provider = reachable[0]
        log.info("RESILIENT_GAS_RPC_INITIALIZED", rpc_count=len(self.providers))

    def get_primary_provider(self) -> AsyncWeb3:
        if self.primary_provider is None:
            raise ConnectionError("No RPC nodes configured.")
        return self.primary_provider

    async def _read(self, name: str, call: Callable[[AsyncWeb3], Awaitable[T]], timeout: Optional[float]) -> T:
        deadline = Deadline(timeout)
        errors = []
        for provider in self.providers:
            if deadline.expired:
                break
            try:
                return await with_deadline(retriable_network_call(call)(provider), deadline.remaining())
            except Exception as e:
                log.error("RPC_READ_FAILED", call=name, url=provider.provider.endpoint_uri, error=str(e))
                errors.append(str(e))
        if deadline.expired:
            raise asyncio.TimeoutError(f"{name} exceeded its {timeout}s deadline: {errors}")
        raise RpcUnavailableError(f"{name} failed on all RPC nodes: {errors}")

    async def get_gas_price(self, timeout: Optional[float] = None) -> int:
        async def _gas_price(w3: AsyncWeb3) -> int:
            return int(await w3.eth.gas_price)
        return await self._read("eth_gasPrice", _gas_price, timeout)

    async def get_latest_block(self, timeout: Optional[float] = None) -> BlockUtilization:
        async def _latest(w3: AsyncWeb3) -> BlockUtilization:
            return parse_block_utilization(await w3.eth.get_block("latest"))
        return await self._read("eth_getBlockByNumber", _latest, timeout)

    async def estimate_gas(self, transaction: Dict[str, Any], timeout: Optional[float] = None) -> int:
        # Primary only, no retry: a revert is an answer, not an outage.
        w3 = self.get_primary_provider()
        return int(await with_deadline(w3.eth.estimate_gas(transaction), timeout))
