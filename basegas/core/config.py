# /basegas/core/config.py
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from basegas.core.networks import get_network

GWEI = 10**9
PRIORITY_LEVELS = ("slow", "standard", "fast", "instant")
DEFAULT_PRIORITY_MULTIPLIERS = MappingProxyType({
    "slow": Decimal("0.9"),
    "standard": Decimal("1.0"),
    "fast": Decimal("1.1"),
    "instant": Decimal("1.25"),
})


class ConfigurationError(ValueError):
    """Raised when the engine is constructed with options that would misprice transactions."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # RPC endpoints. If empty, the public endpoint of NETWORK is used.
    NETWORK: str = "base"
    rpc_urls: List[str] = []
    RPC_TIMEOUT_SECONDS: float = 10.0

    # Gas pricing engine
    GAS_MAX_GWEI: Decimal = Decimal("20")
    GAS_BUFFER: Decimal = Decimal("1.10")
    GAS_BATCH_SIZE: int = 10
    GAS_HISTORY_CAPACITY: int | None = None
    PRIORITY_FEE_GWEI: Decimal = Decimal("2")

    # Gas monitor
    MONITOR_INTERVAL_SECONDS: float = 30.0
    ALERT_LOW_ETH: Decimal = Decimal("0.001")
    ALERT_MEDIUM_ETH: Decimal = Decimal("0.005")
    ALERT_HIGH_ETH: Decimal = Decimal("0.01")
    PRICE_API_URL: str = "https://api.coingecko.com/api/v3/simple/price"

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    HEALTH_PORT: int = 8080

    @property
    def RPC_URL(self) -> str:  # noqa: N802
        """Primary RPC URL: first configured entry, else the network's public endpoint."""
        if self.rpc_urls:
            return self.rpc_urls[0]
        return get_network(self.NETWORK).rpc_url

    def resolved_rpc_urls(self) -> List[str]:
        return list(self.rpc_urls) or [self.RPC_URL]


class GasOptimizerConfig(BaseModel):
    """
    Immutable options for a GasOptimizer.

    Every recognised option is listed here; unknown keys are rejected so a
    misspelt option cannot silently fall back to its default.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_gas_price: int = 20 * GWEI
    gas_buffer: Decimal = Decimal("1.10")
    batch_size: int = 10
    priority_multipliers: Dict[str, Decimal] = Field(default_factory=lambda: dict(DEFAULT_PRIORITY_MULTIPLIERS))
    history_capacity: int | None = None
    default_priority_fee: int = 2 * GWEI
    stats_window: int = 10

    @field_validator("max_gas_price", "default_priority_fee")
    @classmethod
    def _non_negative_wei(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0 wei")
        return v

    @field_validator("gas_buffer")
    @classmethod
    def _buffer_at_least_one(cls, v: Decimal) -> Decimal:
        if v < 1:
            raise ValueError(f"gas_buffer must be >= 1.0 (got {v}); a smaller factor under-funds transactions")
        return v

    @field_validator("batch_size", "stats_window")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1 (got {v})")
        return v

    @field_validator("history_capacity")
    @classmethod
    def _capacity(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"history_capacity must be >= 1 or unset (got {v})")
        return v

    @field_validator("priority_multipliers")
    @classmethod
    def _multipliers(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        unknown = set(v) - set(PRIORITY_LEVELS)
        if unknown:
            raise ValueError(f"unknown priority levels: {sorted(unknown)}")
        for level, factor in v.items():
            if factor <= 0:
                raise ValueError(f"priority multiplier for '{level}' must be > 0")
        return {**DEFAULT_PRIORITY_MULTIPLIERS, **v}

    @classmethod
    def create(cls, **options) -> "GasOptimizerConfig":
        """Validate options, converting pydantic errors into ConfigurationError."""
        try:
            return cls(**options)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid gas optimizer configuration: {e}") from e

    @classmethod
    def from_settings(cls, s: "Settings") -> "GasOptimizerConfig":
        return cls.create(
            max_gas_price=int(s.GAS_MAX_GWEI * GWEI),
            gas_buffer=s.GAS_BUFFER,
            batch_size=s.GAS_BATCH_SIZE,
            history_capacity=s.GAS_HISTORY_CAPACITY,
            default_priority_fee=int(s.PRIORITY_FEE_GWEI * GWEI),
        )


try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from basegas.core.logger import get_logger
        get_logger("basegas.config").critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    raise SystemExit(1)
