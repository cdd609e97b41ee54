import redis

from checkout.utils.retry import redis_retry
from checkout.utils.settings import REDIS_URL
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

#compare-and-delete in one step: only the holder may release
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    -capture lock per provider order (SET NX EX)
    -release via lua so an expired lock taken over by someone else is left alone
    -keeps a second capture request from hitting the provider while the first
     is in flight; the ledger's conditional update still decides who finalizes
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(provider_order_id: str) -> str:
        return f"capture:{provider_order_id}:lock"

    @redis_retry()
    def acquire_capture_lock(self, provider_order_id: str, holder: str, ttl: int) -> bool:
        key = self._key(provider_order_id)
        logger.info(f"Acquire lock {key} for {holder}")
        #SET capture:ABC:lock "<holder>" NX EX 60
        return bool(
            self.redis.set(
                name=key,
                value=holder,
                nx=True,
                ex=ttl,
            )
        )

    @redis_retry()
    def release_capture_lock(self, provider_order_id: str, holder: str) -> bool:
        key = self._key(provider_order_id)
        logger.info(f"Release lock {key} for {holder}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, holder)
        return bool(res)

    @redis_retry()
    def is_capture_locked(self, provider_order_id: str) -> bool:
        return bool(self.redis.exists(self._key(provider_order_id)))
