# /basegas/core/logger.py
import logging
import structlog
import sentry_sdk
from prometheus_client import Counter
from basegas.core.config import settings

# --- Prometheus Metrics ---
GAS_ESTIMATES = Counter("basegas_gas_estimates_total", "Total number of buffered gas estimates recorded")
GAS_ESTIMATION_FAILURES = Counter("basegas_gas_estimation_failures_total", "Gas estimations rejected by the RPC node")
GAS_PRICE_FALLBACKS = Counter("basegas_gas_price_fallbacks_total", "Optimal gas price requests that fell back to the raw base price")
BATCHES_PROCESSED = Counter("basegas_batches_processed_total", "Transaction groups fully annotated", ["outcome"])
ERRORS_LOGGED = Counter("basegas_errors_logged_total", "Total number of errors logged", ["level"])

_COUNTED_LEVELS = {"warning", "error", "critical"}


def count_errors(logger, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that counts warning-and-above events by level."""
    level = event_dict.get("level", method_name)
    if level in _COUNTED_LEVELS:
        ERRORS_LOGGED.labels(level).inc()
    return event_dict


def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            count_errors,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


configure_logging()
log = get_logger("basegas.system")
