# checkout/tasks/expire.py
from datetime import datetime, timedelta, timezone

from redis.exceptions import RedisError

from checkout.celery_worker import celery_app
from checkout.data.database import SessionLocal
from checkout.services.lock_service import LockService
from checkout.services.order_ledger import OrderLedger
from checkout.utils.settings import PENDING_ORDER_TTL_SECONDS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)
lock_service = LockService()


def _capture_in_flight(provider_order_id: str) -> bool:
    try:
        return lock_service.is_capture_locked(provider_order_id)
    except RedisError as e:
        #can't tell, leave the order for the next run
        logger.warning(f"Capture lock check for {provider_order_id} failed: {e}")
        return True


@celery_app.task(name="checkout.tasks.expire.expire_pending_orders_task")
def expire_pending_orders_task(ttl_seconds: int | None = None) -> int:
    """
    Fails checkouts that were never captured.
    Only synchronous capture is supported, so a pending order past the
    approval window can no longer complete. Orders with a capture in flight
    are skipped.
    """
    logger.info("Expire pending orders task started")

    cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds or PENDING_ORDER_TTL_SECONDS)

    db = SessionLocal()
    try:
        expired = OrderLedger(db).expire_stale(cutoff, is_in_flight=_capture_in_flight)
        logger.info(f"Expired {expired} pending orders created before {cutoff.isoformat()}")
        return expired
    finally:
        db.close()
