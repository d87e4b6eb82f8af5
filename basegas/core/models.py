# /basegas/core/models.py
# Value types exchanged between the gas engine, its RPC collaborator and callers.
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Keys the engine computes itself; a caller's own values for them are not carried over.
GAS_FIELD_KEYS = frozenset({"gas", "gasPrice", "maxFeePerGas", "maxPriorityFeePerGas", "type"})


class DraftTransaction(BaseModel):
    """
    Caller-owned transaction body. The engine only reads it.

    Fields the engine does not model (nonce, chainId, accessList, ...) are kept
    as extras and handed back unchanged on the annotated transaction.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    to: Optional[str] = None
    value: int = 0
    data: str = "0x"
    sender: Optional[str] = Field(default=None, alias="from")

    @classmethod
    def coerce(cls, tx: "DraftTransaction | Dict[str, Any]") -> "DraftTransaction":
        if isinstance(tx, DraftTransaction):
            return tx
        return cls.model_validate(tx)

    @property
    def passthrough_fields(self) -> Dict[str, Any]:
        return {k: v for k, v in (self.model_extra or {}).items() if k not in GAS_FIELD_KEYS}

    def draft_fields(self) -> Dict[str, Any]:
        fields = self.model_dump(include=set(DraftTransaction.model_fields))
        fields.update(self.passthrough_fields)
        return fields

    def to_call_params(self) -> Dict[str, Any]:
        """Renders the body in the shape eth_estimateGas expects."""
        params: Dict[str, Any] = dict(self.passthrough_fields)
        params["value"] = self.value
        params["data"] = self.data
        if self.to is not None:
            params["to"] = self.to
        if self.sender is not None:
            params["from"] = self.sender
        return params


class AnnotatedTransaction(DraftTransaction):
    """A draft plus the gas fields the engine computed for it. Never submitted by the engine."""
    gas_price: int
    gas_limit: int
    type: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    def to_tx_params(self) -> Dict[str, Any]:
        params = self.to_call_params()
        params["gas"] = self.gas_limit
        if self.type == 2:
            params["type"] = 2
            params["maxFeePerGas"] = self.max_fee_per_gas
            params["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        else:
            params["gasPrice"] = self.gas_price
        return params


class BlockUtilization(BaseModel):
    model_config = ConfigDict(frozen=True)

    gas_used: int
    gas_limit: int

    def congestion_ratio(self) -> Optional[float]:
        """gas_used / gas_limit, or None when the block carries no capacity figure."""
        if self.gas_limit <= 0:
            return None
        return self.gas_used / self.gas_limit


class GasEstimateRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw_estimate: int
    buffered_estimate: int


class CongestionTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class GasPriceResult(BaseModel):
    """
    Outcome of an optimal gas price request.

    ``fell_back`` is True when the congestion adjustment could not be computed
    and ``price`` is the raw base price instead; ``error`` then carries the reason.
    """
    model_config = ConfigDict(frozen=True)

    price: int
    base_price: int
    congestion: Optional[float] = None
    tier: CongestionTier = CongestionTier.UNKNOWN
    clamped: bool = False
    fell_back: bool = False
    error: Optional[str] = None


class GasStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_data: bool
    total_transactions: int = 0
    sample_size: int = 0
    recent_avg_estimated: Optional[int] = None
    recent_avg_buffered: Optional[int] = None
    # Percent; None when undefined (no data, or a zero mean raw estimate).
    buffer_efficiency: Optional[Decimal] = None
    message: Optional[str] = None

    @classmethod
    def empty(cls) -> "GasStats":
        return cls(has_data=False, message="No gas history available")

    @property
    def buffer_efficiency_label(self) -> str:
        if self.buffer_efficiency is None:
            return "N/A"
        return f"{self.buffer_efficiency:.2f}%"


class GasPriceQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    wei: int
    gwei: Decimal
    eth: Decimal
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TransactionCost(BaseModel):
    gas_limit: int
    gas_price_gwei: Decimal
    total_cost_wei: int
    total_cost_eth: Decimal
    estimated_usd: str


class AverageGasPrice(BaseModel):
    average_gwei: Decimal
    sample_size: int
    time_range: str


class PriorityRecommendation(BaseModel):
    priority: str
    recommended_gwei: Decimal
    recommended_wei: int


class GasAlert(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    NONE = "none"
