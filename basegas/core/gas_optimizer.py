# /basegas/core/gas_optimizer.py
# Congestion-aware gas pricing, buffered gas limits and bounded batch estimation.

import asyncio
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from structlog.contextvars import bound_contextvars

from basegas.core.config import ConfigurationError, GasOptimizerConfig
from basegas.core.history import GasHistory
from basegas.core.logger import (
    get_logger,
    BATCHES_PROCESSED,
    GAS_ESTIMATES,
    GAS_ESTIMATION_FAILURES,
    GAS_PRICE_FALLBACKS,
)
from basegas.core.models import (
    AnnotatedTransaction,
    CongestionTier,
    DraftTransaction,
    GasEstimateRecord,
    GasPriceResult,
    GasStats,
)
from basegas.core.rpc import Deadline, RpcCollaborator

log = get_logger(__name__)

TxLike = Union[DraftTransaction, Dict[str, Any]]

HIGH_CONGESTION = 0.8
LOW_CONGESTION = 0.3
# Integer percentages so wei arithmetic stays exact.
HIGH_CONGESTION_PCT = 120
LOW_CONGESTION_PCT = 90


class BatchEstimationError(Exception):
    """A transaction in a batch group could not be priced; the whole group is reported as failed."""
    def __init__(self, index: int, group_index: int, index_in_group: int, transaction: DraftTransaction, cause: BaseException):
        self.index = index
        self.group_index = group_index
        self.index_in_group = index_in_group
        self.transaction = transaction
        self.cause = cause
        super().__init__(
            f"Gas estimation failed for transaction {index_in_group} of group {group_index} "
            f"(batch index {index}, to={transaction.to}): {cause}"
        )


def classify_congestion(ratio: Optional[float]) -> CongestionTier:
    if ratio is None:
        return CongestionTier.UNKNOWN
    if ratio > HIGH_CONGESTION:
        return CongestionTier.HIGH
    if ratio < LOW_CONGESTION:
        return CongestionTier.LOW
    return CongestionTier.MEDIUM


def adjust_for_congestion(base_price: int, tier: CongestionTier) -> int:
    if tier is CongestionTier.HIGH:
        return base_price * HIGH_CONGESTION_PCT // 100
    if tier is CongestionTier.LOW:
        return base_price * LOW_CONGESTION_PCT // 100
    return base_price


class GasOptimizer:
    """
    Recommends gas prices and limits for draft transactions.

    Reads network state through an RpcCollaborator and keeps an in-memory
    history of its estimates. It never signs or submits anything.
    """
    def __init__(self, rpc: RpcCollaborator, config: Optional[GasOptimizerConfig] = None, **options):
        if config is not None and options:
            raise ConfigurationError("Pass either a GasOptimizerConfig or keyword options, not both.")
        self.rpc = rpc
        self.config = config or GasOptimizerConfig.create(**options)
        self.history = GasHistory(self.config.history_capacity)
        log.info(
            "GAS_OPTIMIZER_INITIALIZED",
            max_gas_price=self.config.max_gas_price,
            gas_buffer=str(self.config.gas_buffer),
            batch_size=self.config.batch_size,
        )

    async def _read_congestion(self, timeout: Optional[float]) -> Tuple[Optional[float], Optional[str]]:
        try:
            block = await self.rpc.get_latest_block(timeout=timeout)
        except Exception as e:
            reason = str(e) or type(e).__name__
            log.warning("NETWORK_CONGESTION_UNAVAILABLE", error=reason)
            return None, reason
        ratio = block.congestion_ratio()
        if ratio is None:
            log.warning("NETWORK_CONGESTION_UNKNOWN", gas_used=block.gas_used, gas_limit=block.gas_limit)
        return ratio, None

    async def get_network_congestion(self, timeout: Optional[float] = None) -> Optional[float]:
        """Latest block's gasUsed / gasLimit in [0, 1], or None when it cannot be determined."""
        ratio, _ = await self._read_congestion(timeout)
        return ratio

    def _clamp(self, price: int) -> Tuple[int, bool]:
        if price > self.config.max_gas_price:
            return self.config.max_gas_price, True
        return price, False

    async def get_optimal_gas_price(self, timeout: Optional[float] = None) -> GasPriceResult:
        """
        Base gas price adjusted for latest-block congestion, capped at max_gas_price.

        If the node cannot provide the price or the congestion figure, the raw
        base price is returned with ``fell_back=True``. Only when the base price
        itself cannot be read on a second attempt does the error propagate.

        ``timeout`` bounds the whole call, re-read included.
        """
        deadline = Deadline(timeout)
        try:
            base_price = await self.rpc.get_gas_price(timeout=deadline.remaining())
            ratio, error = await self._read_congestion(deadline.remaining())
        except Exception as e:
            base_price, ratio, error = None, None, str(e) or type(e).__name__

        if error is not None:
            GAS_PRICE_FALLBACKS.inc()
            log.warning("GAS_PRICE_FALLBACK", error=error)
            if base_price is None:
                base_price = await self.rpc.get_gas_price(timeout=deadline.remaining())
            price, clamped = self._clamp(base_price)
            return GasPriceResult(
                price=price, base_price=base_price, clamped=clamped, fell_back=True, error=error,
            )

        tier = classify_congestion(ratio)
        price, clamped = self._clamp(adjust_for_congestion(base_price, tier))
        log.debug("OPTIMAL_GAS_PRICE", base_price=base_price, congestion=ratio, tier=tier.value, price=price, clamped=clamped)
        return GasPriceResult(price=price, base_price=base_price, congestion=ratio, tier=tier, clamped=clamped)

    def apply_buffer(self, raw_estimate: int) -> int:
        """floor(raw_estimate * gas_buffer)."""
        buffered = Decimal(raw_estimate) * self.config.gas_buffer
        return int(buffered.to_integral_value(rounding=ROUND_FLOOR))

    async def estimate_gas_with_buffer(self, transaction: TxLike, timeout: Optional[float] = None) -> int:
        """
        Simulates the transaction and returns its gas limit with the safety buffer applied.

        Simulation failures (e.g. the call would revert) propagate unchanged and
        are not recorded in history.
        """
        draft = DraftTransaction.coerce(transaction)
        try:
            raw = await self.rpc.estimate_gas(draft.to_call_params(), timeout=timeout)
        except Exception as e:
            GAS_ESTIMATION_FAILURES.inc()
            log.error("GAS_ESTIMATION_FAILED", to=draft.to, error=str(e))
            raise

        buffered = self.apply_buffer(raw)
        self.history.append(GasEstimateRecord(raw_estimate=raw, buffered_estimate=buffered))
        GAS_ESTIMATES.inc()
        return buffered

    async def _annotate(self, draft: DraftTransaction, deadline: Deadline) -> AnnotatedTransaction:
        gas_price = await self.get_optimal_gas_price(timeout=deadline.remaining())
        gas_limit = await self.estimate_gas_with_buffer(draft, timeout=deadline.remaining())
        return AnnotatedTransaction(**draft.draft_fields(), gas_price=gas_price.price, gas_limit=gas_limit)

    async def batch_transactions(self, transactions: Sequence[TxLike], timeout: Optional[float] = None) -> List[AnnotatedTransaction]:
        """
        Annotates every transaction with its own gas price and limit.

        Transactions are processed in contiguous groups of ``batch_size``: all
        members of a group run concurrently and the group is joined before the
        next one starts. A failure aborts the call with BatchEstimationError;
        groups already completed keep their history records.

        ``timeout`` is a deadline for the whole batch; a group that starts late
        gets only what is left of it.
        """
        drafts = [DraftTransaction.coerce(tx) for tx in transactions]
        deadline = Deadline(timeout)
        size = self.config.batch_size
        results: List[AnnotatedTransaction] = []

        for group_index, start in enumerate(range(0, len(drafts), size)):
            group = drafts[start:start + size]
            with bound_contextvars(batch_group=group_index):
                outcomes = await asyncio.gather(
                    *(self._annotate(tx, deadline) for tx in group),
                    return_exceptions=True,
                )
                for offset, outcome in enumerate(outcomes):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    if isinstance(outcome, BaseException):
                        BATCHES_PROCESSED.labels("failed").inc()
                        log.error("BATCH_GROUP_FAILED", index_in_group=offset, group_size=len(group), error=str(outcome))
                        raise BatchEstimationError(start + offset, group_index, offset, group[offset], outcome) from outcome
                BATCHES_PROCESSED.labels("ok").inc()
                log.info("BATCH_GROUP_ANNOTATED", group_size=len(group))
            results.extend(outcomes)

        return results

    async def optimize_contract_call(self, call: TxLike, timeout: Optional[float] = None) -> AnnotatedTransaction:
        """Optimal price and buffered limit, stamped as an EIP-1559 (type 2) transaction."""
        draft = DraftTransaction.coerce(call)
        deadline = Deadline(timeout)
        gas_price = await self.get_optimal_gas_price(timeout=deadline.remaining())
        gas_limit = await self.estimate_gas_with_buffer(draft, timeout=deadline.remaining())
        # A tip above the fee cap is rejected by the node.
        tip = min(self.config.default_priority_fee, gas_price.price)
        return AnnotatedTransaction(
            **draft.draft_fields(),
            gas_price=gas_price.price,
            gas_limit=gas_limit,
            type=2,
            max_fee_per_gas=gas_price.price,
            max_priority_fee_per_gas=tip,
        )

    def get_gas_stats(self) -> GasStats:
        recent = self.history.recent(self.config.stats_window)
        if not recent:
            return GasStats.empty()

        avg_raw = Decimal(sum(r.raw_estimate for r in recent)) / len(recent)
        avg_buffered = Decimal(sum(r.buffered_estimate for r in recent)) / len(recent)
        efficiency = None
        message = None
        if avg_raw == 0:
            message = "Buffer efficiency undefined for a zero mean estimate"
        else:
            efficiency = ((avg_buffered - avg_raw) / avg_raw * 100).quantize(Decimal("0.01"))

        return GasStats(
            has_data=True,
            total_transactions=self.history.total_recorded,
            sample_size=len(recent),
            recent_avg_estimated=int(avg_raw.to_integral_value(rounding=ROUND_FLOOR)),
            recent_avg_buffered=int(avg_buffered.to_integral_value(rounding=ROUND_FLOOR)),
            buffer_efficiency=efficiency,
            message=message,
        )

    def clear_history(self) -> None:
        self.history.clear()
        log.info("GAS_HISTORY_CLEARED")
