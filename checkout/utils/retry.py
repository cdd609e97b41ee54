# checkout/utils/retry.py
import logging

import redis
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def _retrying(exc_types, attempts: int, base_wait: float, max_wait: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_wait, min=base_wait, max=max_wait),
        retry=retry_if_exception_type(exc_types),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


#only for idempotent calls (catalog GET, token exchange), never for create/capture
def http_retry(attempts: int = 3):
    return _retrying(requests.RequestException, attempts, base_wait=0.3, max_wait=3)


def redis_retry(attempts: int = 3):
    return _retrying(redis.RedisError, attempts, base_wait=0.2, max_wait=2)
