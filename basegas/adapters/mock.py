# /basegas/adapters/mock.py
# In-memory RPC collaborator for tests and dry runs.
# Behaves like a node: reports a gas price and latest block, simulates gas,
# and can be told to fail or revert.

import asyncio
from typing import Any, Dict, List, Optional

from basegas.core.logger import get_logger
from basegas.core.models import BlockUtilization
from basegas.core.rpc import RpcCollaborator, with_deadline

log = get_logger(__name__)


class MockRevertError(Exception):
    """Stands in for the node's 'execution reverted' response."""


class MockRpcClient(RpcCollaborator):
    def __init__(
        self,
        gas_price: int = 10 * 10**9,
        gas_used: int = 15_000_000,
        gas_limit: int = 30_000_000,
        default_estimate: int = 21_000,
        latency: float = 0.0,
    ):
        self.gas_price = gas_price
        self.block = BlockUtilization(gas_used=gas_used, gas_limit=gas_limit)
        self.default_estimate = default_estimate
        self.latency = latency
        # call name -> seconds, overriding latency for that call
        self.call_latency: Dict[str, float] = {}
        # to-address -> gas units
        self.estimates: Dict[str, int] = {}
        self.reverting: set = set()
        self.estimate_calls: List[Dict[str, Any]] = []
        self.price_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._price_failures = 0
        self._block_error: Optional[Exception] = None
        log.info("MOCK_RPC_CLIENT_INITIALIZED", gas_price=gas_price)

    def set_congestion(self, gas_used: int, gas_limit: int):
        self.block = BlockUtilization(gas_used=gas_used, gas_limit=gas_limit)

    def set_estimate(self, to: str, gas: int):
        self.estimates[to] = gas

    def set_reverting(self, to: str):
        """Gas simulation for this address will raise MockRevertError."""
        self.reverting.add(to)

    def fail_next_price_calls(self, count: int = 1):
        self._price_failures = count

    def fail_block_calls(self, error: Optional[Exception] = None):
        self._block_error = error or ConnectionError("mock node unreachable")

    def slow_down(self, call: str, seconds: float):
        """Delays one kind of call: "gas_price", "latest_block" or "estimate_gas"."""
        self.call_latency[call] = seconds

    async def _pause(self, call: str):
        delay = self.call_latency.get(call, self.latency)
        if delay:
            await asyncio.sleep(delay)

    async def get_gas_price(self, timeout: Optional[float] = None) -> int:
        self.price_calls += 1
        await with_deadline(self._pause("gas_price"), timeout)
        if self._price_failures > 0:
            self._price_failures -= 1
            raise ConnectionError("mock eth_gasPrice failure")
        return self.gas_price

    async def get_latest_block(self, timeout: Optional[float] = None) -> BlockUtilization:
        await with_deadline(self._pause("latest_block"), timeout)
        if self._block_error is not None:
            raise self._block_error
        return self.block

    async def estimate_gas(self, transaction: Dict[str, Any], timeout: Optional[float] = None) -> int:
        self.estimate_calls.append(transaction)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await with_deadline(self._pause("estimate_gas"), timeout)
            to = transaction.get("to")
            if to in self.reverting:
                raise MockRevertError(f"execution reverted: {to}")
            return self.estimates.get(to, self.default_estimate)
        finally:
            self.in_flight -= 1
