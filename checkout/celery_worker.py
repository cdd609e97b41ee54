# checkout/celery_worker.py
from celery import Celery

from checkout.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "checkout",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#register tasks explicitly
celery_app.conf.imports = (
    "checkout.tasks.expire",
)

celery_app.conf.beat_schedule = {
    "expire-pending-orders-every-5-minutes": {
        "task": "checkout.tasks.expire.expire_pending_orders_task",
        "schedule": 300.0,
    },
}

celery_app.conf.timezone = "UTC"
