# /test/test_batching.py
# - Batch annotation keeps order, groups by batch_size and bounds concurrency.
# - A failing transaction aborts its group and names its position.
# - Caller fields survive annotation; deadlines and cancellation reach every group.

import asyncio

import pytest

from basegas.adapters.mock import MockRpcClient, MockRevertError
from basegas.core.gas_optimizer import BatchEstimationError, GasOptimizer
from basegas.core.models import AnnotatedTransaction, DraftTransaction

GWEI = 10**9


def address(i: int) -> str:
    return f"0x{i:040x}"


@pytest.fixture
def rpc():
    client = MockRpcClient(gas_price=10 * GWEI, latency=0.005)
    for i in range(25):
        client.set_estimate(address(i), 21_000 + i * 1_000)
    return client


@pytest.fixture
def transactions():
    return [{"to": address(i), "value": i} for i in range(25)]


@pytest.mark.asyncio
async def test_batch_preserves_order_and_length(rpc, transactions):
    """
    GIVEN 25 transactions and a batch size of 10
    WHEN they are batched
    THEN every transaction comes back annotated, in the original order.
    """
    optimizer = GasOptimizer(rpc, batch_size=10)

    annotated = await optimizer.batch_transactions(transactions)

    assert len(annotated) == 25
    assert all(isinstance(tx, AnnotatedTransaction) for tx in annotated)
    assert [tx.to for tx in annotated] == [address(i) for i in range(25)]
    assert [tx.value for tx in annotated] == list(range(25))
    for i, tx in enumerate(annotated):
        assert tx.gas_limit == optimizer.apply_buffer(21_000 + i * 1_000)
        assert tx.gas_price == 10 * GWEI


@pytest.mark.asyncio
async def test_batch_runs_groups_of_ten_ten_five_in_order(rpc, transactions):
    optimizer = GasOptimizer(rpc, batch_size=10)

    await optimizer.batch_transactions(transactions)

    called = [call["to"] for call in rpc.estimate_calls]
    assert set(called[:10]) == {address(i) for i in range(0, 10)}
    assert set(called[10:20]) == {address(i) for i in range(10, 20)}
    assert set(called[20:]) == {address(i) for i in range(20, 25)}


@pytest.mark.asyncio
@pytest.mark.parametrize("batch_size", [1, 3, 10])
async def test_batch_never_exceeds_batch_size_in_flight(rpc, transactions, batch_size):
    optimizer = GasOptimizer(rpc, batch_size=batch_size)

    await optimizer.batch_transactions(transactions)

    assert 1 <= rpc.max_in_flight <= batch_size


@pytest.mark.asyncio
async def test_empty_batch(rpc):
    optimizer = GasOptimizer(rpc)
    assert await optimizer.batch_transactions([]) == []
    assert rpc.estimate_calls == []


@pytest.mark.asyncio
async def test_batch_accepts_draft_models(rpc):
    optimizer = GasOptimizer(rpc, batch_size=2)
    drafts = [DraftTransaction(to=address(0)), DraftTransaction(to=address(1))]

    annotated = await optimizer.batch_transactions(drafts)

    assert [tx.to for tx in annotated] == [address(0), address(1)]
    # drafts are immutable inputs; results are new objects
    assert annotated[0] is not drafts[0]


@pytest.mark.asyncio
async def test_failing_transaction_aborts_its_group(rpc, transactions):
    """
    GIVEN transaction 13 reverts in simulation
    WHEN 25 transactions are batched in groups of 10
    THEN the call fails naming group 1, position 3, and group 2 is never started.
    """
    rpc.set_reverting(address(13))
    optimizer = GasOptimizer(rpc, batch_size=10)

    with pytest.raises(BatchEstimationError) as excinfo:
        await optimizer.batch_transactions(transactions)

    err = excinfo.value
    assert err.index == 13
    assert err.group_index == 1
    assert err.index_in_group == 3
    assert err.transaction.to == address(13)
    assert isinstance(err.cause, MockRevertError)
    assert isinstance(err.__cause__, MockRevertError)
    assert "execution reverted" in str(err)

    called = {call["to"] for call in rpc.estimate_calls}
    assert not called & {address(i) for i in range(20, 25)}
    # the completed first group is not rolled back
    assert len(optimizer.history) >= 10


@pytest.mark.asyncio
async def test_batch_keeps_fields_it_does_not_compute(rpc):
    optimizer = GasOptimizer(rpc)
    tx = {"to": address(0), "nonce": 5, "chainId": 8453, "accessList": [], "gas": 1}

    [annotated] = await optimizer.batch_transactions([tx])

    assert annotated.model_extra == {"nonce": 5, "chainId": 8453, "accessList": []}
    params = annotated.to_tx_params()
    assert params["nonce"] == 5
    assert params["chainId"] == 8453
    assert params["gas"] == annotated.gas_limit == 23_100
    assert params["gasPrice"] == 10 * GWEI
    # the node simulates the same body, minus the caller's own gas limit
    assert rpc.estimate_calls[0]["nonce"] == 5
    assert "gas" not in rpc.estimate_calls[0]


@pytest.mark.asyncio
async def test_batch_timeout_reaches_the_estimates(rpc, transactions):
    rpc.slow_down("estimate_gas", 0.5)
    optimizer = GasOptimizer(rpc, batch_size=10)

    with pytest.raises(BatchEstimationError) as excinfo:
        await optimizer.batch_transactions(transactions[:3], timeout=0.1)

    assert excinfo.value.index == 0
    assert isinstance(excinfo.value.cause, asyncio.TimeoutError)
    assert len(optimizer.history) == 0


@pytest.mark.asyncio
async def test_batch_timeout_is_one_deadline_for_all_groups(rpc, transactions):
    """
    GIVEN estimates that each take well under the deadline
    WHEN five single-transaction groups run one after another
    THEN the later groups run out of the shared budget
    """
    rpc.slow_down("estimate_gas", 0.1)
    optimizer = GasOptimizer(rpc, batch_size=1)

    with pytest.raises(BatchEstimationError) as excinfo:
        await optimizer.batch_transactions(transactions[:5], timeout=0.25)

    assert excinfo.value.group_index > 0
    assert isinstance(excinfo.value.cause, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_cancelling_a_batch_is_not_reported_as_a_failure(rpc, transactions):
    rpc.slow_down("estimate_gas", 1.0)
    optimizer = GasOptimizer(rpc, batch_size=10)

    task = asyncio.create_task(optimizer.batch_transactions(transactions))
    await asyncio.sleep(0.05)
    assert rpc.in_flight > 0
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert rpc.in_flight == 0
    assert len(optimizer.history) == 0
