# /test/test_rpc.py
import asyncio

import pytest

from basegas.core.models import BlockUtilization
from basegas.core.rpc import (
    MalformedBlockError,
    ResilientGasRpc,
    RpcUnavailableError,
    parse_block_utilization,
)


class DummyEth:
    def __init__(self, price=None, block=None, error=None, delay=0.0):
        self.price = price
        self.block = block
        self.error = error
        self.delay = delay
        self.calls = 0
        self.estimates = []

    async def _answer(self, value):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return value

    @property
    def gas_price(self):
        return self._answer(self.price)

    async def get_block(self, ident):
        assert ident == "latest"
        return await self._answer(self.block)

    async def estimate_gas(self, tx):
        self.estimates.append(tx)
        return await self._answer(21000)


class DummyW3:
    def __init__(self, url, **eth_kwargs):
        self.eth = DummyEth(**eth_kwargs)
        self.provider = type("P", (), {"endpoint_uri": url})()


@pytest.fixture
def rpc():
    client = ResilientGasRpc(rpc_urls=["http://node-a", "http://node-b"])
    return client


@pytest.mark.asyncio
async def test_reads_fail_over_to_next_node(rpc):
    rpc.providers = [
        DummyW3("http://node-a", error=ValueError("bad response")),
        DummyW3("http://node-b", price=7, block={"gasUsed": 3, "gasLimit": 4}),
    ]
    assert await rpc.get_gas_price() == 7
    assert await rpc.get_latest_block() == BlockUtilization(gas_used=3, gas_limit=4)


@pytest.mark.asyncio
async def test_all_nodes_failing_raises(rpc):
    rpc.providers = [
        DummyW3("http://node-a", error=ValueError("bad response")),
        DummyW3("http://node-b", block={"number": 1}),
    ]
    with pytest.raises(RpcUnavailableError):
        await rpc.get_latest_block()


@pytest.mark.asyncio
async def test_estimate_gas_uses_primary_only(rpc):
    primary = DummyW3("http://node-a", error=ValueError("execution reverted"))
    secondary = DummyW3("http://node-b")
    rpc.providers = [primary, secondary]
    rpc.primary_provider = primary

    with pytest.raises(ValueError, match="execution reverted"):
        await rpc.estimate_gas({"to": "0x1"})
    assert secondary.eth.estimates == []


def test_parse_block_utilization():
    block = parse_block_utilization({"gasUsed": 15, "gasLimit": 30, "number": 9})
    assert block.congestion_ratio() == 0.5
    assert BlockUtilization(gas_used=0, gas_limit=0).congestion_ratio() is None
    with pytest.raises(MalformedBlockError):
        parse_block_utilization({"gasUsed": 15})
    with pytest.raises(MalformedBlockError):
        parse_block_utilization(None)


@pytest.mark.asyncio
async def test_failover_shares_one_deadline(rpc):
    """
    GIVEN two nodes that are both slower than the caller's deadline
    WHEN the gas price is read with that deadline
    THEN the first node uses up the whole budget and the second is never asked
    """
    slow_a = DummyW3("http://node-a", price=7, delay=0.5)
    slow_b = DummyW3("http://node-b", price=7, delay=0.5)
    rpc.providers = [slow_a, slow_b]

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(asyncio.TimeoutError):
        await rpc.get_gas_price(timeout=0.05)

    assert loop.time() - started < 0.4
    assert slow_a.eth.calls == 1
    assert slow_b.eth.calls == 0


@pytest.mark.asyncio
async def test_failover_uses_the_remaining_budget(rpc):
    rpc.providers = [
        DummyW3("http://node-a", error=ValueError("bad response")),
        DummyW3("http://node-b", price=7, delay=0.01),
    ]
    assert await rpc.get_gas_price(timeout=1.0) == 7
