# /basegas/core/decorators.py
# Reusable decorators for operational resilience.
import asyncio
import logging

import aiohttp
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential, before_sleep_log
from basegas.core.logger import get_logger

log = get_logger(__name__)

# Errors worth retrying: the node was unreachable or slow, not that it rejected the request.
TRANSIENT_ERRORS = (ConnectionError, TimeoutError, asyncio.TimeoutError, aiohttp.ClientError)

# Generic retry decorator for idempotent network reads. Never apply it to gas
# simulation: a reverting transaction must surface on the first failure.
retriable_network_call = retry(
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True # Re-raise the last exception after retries are exhausted
)
