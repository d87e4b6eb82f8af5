# /basegas/core/config_validator.py
# Run at startup to validate settings before any RPC traffic.
from basegas.core.config import ConfigurationError, GasOptimizerConfig, settings
from basegas.core.logger import log
from basegas.core.networks import get_network


def validate(s=None) -> GasOptimizerConfig:
    s = s or settings
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    try:
        get_network(s.NETWORK)
    except ValueError as e:
        errors.append(str(e))

    for url in s.rpc_urls:
        if not url.startswith(("http://", "https://")):
            errors.append(f"Unsupported RPC URL scheme: {url}")

    if s.RPC_TIMEOUT_SECONDS <= 0:
        errors.append("RPC_TIMEOUT_SECONDS must be positive")

    if not s.ALERT_LOW_ETH <= s.ALERT_MEDIUM_ETH <= s.ALERT_HIGH_ETH:
        errors.append("Alert thresholds must satisfy LOW <= MEDIUM <= HIGH")

    config = None
    try:
        config = GasOptimizerConfig.from_settings(s)
    except ConfigurationError as e:
        errors.append(str(e))

    if errors:
        for error in errors:
            log.critical(error)
        raise ConfigurationError("System configuration is invalid. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---")
    return config


if __name__ == "__main__":
    validate()
