# /basegas/core/monitor.py
# Periodic gas price sampling, cost estimates and threshold alerts.

import asyncio
from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Deque, Dict, List, Optional

from basegas.adapters.price_oracle import PriceOracle
from basegas.core.config import GasOptimizerConfig, settings
from basegas.core.logger import get_logger
from basegas.core.models import (
    AverageGasPrice,
    DraftTransaction,
    GasAlert,
    GasPriceQuote,
    PriorityRecommendation,
    TransactionCost,
)
from basegas.core.rpc import Deadline, RpcCollaborator
from basegas.core.units import calculate_tx_cost, eth_to_wei, gwei_to_wei, wei_to_eth, wei_to_gwei

log = get_logger(__name__)

HISTORY_LIMIT = 100
FOUR_PLACES = Decimal("0.0001")


def default_thresholds() -> Dict[str, Decimal]:
    return {
        "low": settings.ALERT_LOW_ETH,
        "medium": settings.ALERT_MEDIUM_ETH,
        "high": settings.ALERT_HIGH_ETH,
    }


class GasMonitor:
    def __init__(
        self,
        rpc: RpcCollaborator,
        oracle: Optional[PriceOracle] = None,
        config: Optional[GasOptimizerConfig] = None,
        alert_thresholds: Optional[Dict[str, Decimal]] = None,
    ):
        self.rpc = rpc
        self.oracle = oracle
        self.config = config or GasOptimizerConfig()
        self.alert_thresholds = alert_thresholds or default_thresholds()
        self.gas_history: Deque[GasPriceQuote] = deque(maxlen=HISTORY_LIMIT)

    async def get_current_gas_price(self, timeout: Optional[float] = None) -> GasPriceQuote:
        try:
            wei = await self.rpc.get_gas_price(timeout=timeout)
        except Exception as e:
            log.error("GAS_PRICE_FETCH_FAILED", error=str(e))
            raise
        return GasPriceQuote(wei=wei, gwei=wei_to_gwei(wei), eth=wei_to_eth(wei))

    async def convert_to_usd(self, eth_amount: Decimal) -> str:
        if self.oracle is None:
            return "N/A"
        eth_price = await self.oracle.get_eth_usd()
        if eth_price is None:
            return "N/A"
        return str((eth_amount * eth_price).quantize(Decimal("0.01")))

    async def estimate_transaction_cost(
        self, to: str, data: str = "0x", value_eth: str = "0", timeout: Optional[float] = None
    ) -> TransactionCost:
        tx = DraftTransaction(to=to, data=data, value=eth_to_wei(value_eth))
        deadline = Deadline(timeout)
        try:
            gas_estimate = await self.rpc.estimate_gas(tx.to_call_params(), timeout=deadline.remaining())
            gas_price = await self.rpc.get_gas_price(timeout=deadline.remaining())
        except Exception as e:
            log.error("TRANSACTION_COST_ESTIMATE_FAILED", to=to, error=str(e))
            raise

        total_cost = calculate_tx_cost(gas_estimate, gas_price)
        total_eth = wei_to_eth(total_cost)
        return TransactionCost(
            gas_limit=gas_estimate,
            gas_price_gwei=wei_to_gwei(gas_price),
            total_cost_wei=total_cost,
            total_cost_eth=total_eth,
            estimated_usd=await self.convert_to_usd(total_eth),
        )

    async def sample(self, timeout: Optional[float] = None) -> GasPriceQuote:
        """Takes one price sample, records it and checks alert thresholds."""
        quote = await self.get_current_gas_price(timeout=timeout)
        self.gas_history.append(quote)
        log.info("GAS_PRICE_SAMPLED", gwei=str(quote.gwei), eth=str(quote.eth))
        self.check_gas_alerts(quote.eth)
        return quote

    async def monitor_gas_prices(self, interval_seconds: Optional[float] = None, iterations: Optional[int] = None):
        """
        Samples the gas price every ``interval_seconds``.
        Runs until cancelled unless ``iterations`` is given. A failed sample is
        logged and the loop keeps going.
        """
        interval = settings.MONITOR_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        log.info("GAS_MONITOR_STARTED", interval_seconds=interval)
        done = 0
        while iterations is None or done < iterations:
            try:
                await self.sample()
            except Exception as e:
                log.error("GAS_MONITOR_SAMPLE_FAILED", error=str(e))
            done += 1
            if iterations is None or done < iterations:
                await asyncio.sleep(interval)

    def check_gas_alerts(self, gas_price_eth: Decimal) -> GasAlert:
        if gas_price_eth <= self.alert_thresholds["low"]:
            log.info("LOW_GAS_ALERT", gas_price_eth=str(gas_price_eth))
            return GasAlert.LOW
        if gas_price_eth >= self.alert_thresholds["high"]:
            log.warning("HIGH_GAS_ALERT", gas_price_eth=str(gas_price_eth))
            return GasAlert.HIGH
        if gas_price_eth >= self.alert_thresholds["medium"]:
            log.info("MEDIUM_GAS_ALERT", gas_price_eth=str(gas_price_eth))
            return GasAlert.MEDIUM
        return GasAlert.NONE

    def get_gas_history(self) -> List[GasPriceQuote]:
        return list(self.gas_history)

    def get_average_gas_price(self, hours: float = 1, now: Optional[datetime] = None) -> Optional[AverageGasPrice]:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        recent = [q for q in self.gas_history if q.timestamp > cutoff]
        if not recent:
            return None
        average = sum((q.gwei for q in recent), Decimal(0)) / len(recent)
        return AverageGasPrice(
            average_gwei=average.quantize(FOUR_PLACES),
            sample_size=len(recent),
            time_range=f"{hours}h",
        )

    async def optimize_gas_price(self, priority: str = "standard", timeout: Optional[float] = None) -> PriorityRecommendation:
        multipliers = self.config.priority_multipliers
        if priority not in multipliers:
            raise ValueError(f"Unknown priority '{priority}'. Expected one of: {', '.join(multipliers)}")
        current = await self.get_current_gas_price(timeout=timeout)
        recommended = (current.gwei * multipliers[priority]).quantize(FOUR_PLACES)
        return PriorityRecommendation(
            priority=priority,
            recommended_gwei=recommended,
            recommended_wei=gwei_to_wei(recommended),
        )
