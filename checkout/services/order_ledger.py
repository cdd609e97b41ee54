# checkout/services/order_ledger.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List
from uuid import uuid4

from sqlalchemy.orm import Session

from checkout.data.models.order import OrderModel, OrderStatus
from checkout.data.models.order_item import OrderItemModel
from checkout.domain.errors import AlreadyProcessed, Forbidden, NotFound, ValidationError
from checkout.repos.order_repo import OrderRepo
from checkout.utils import settings
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def _snapshot(items) -> List[OrderItemModel]:
    return [
        OrderItemModel(
            catalog_item_id=i.catalog_item_id,
            title=i.title,
            attribution_label=i.attribution_label,
            unit_price=Decimal(i.unit_price),
            quantity=i.quantity,
            image_ref=i.image_ref,
        )
        for i in items
    ]


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "provider_order_id": order.provider_order_id,
        "status": order.status,
        "total_amount": Decimal(order.total_amount),
        "currency": order.currency,
        "payer_email": order.payer_email,
        "items": [
            {
                "catalog_item_id": i.catalog_item_id,
                "title": i.title,
                "attribution_label": i.attribution_label,
                "unit_price": Decimal(i.unit_price),
                "quantity": i.quantity,
                "image_ref": i.image_ref,
            }
            for i in order.items
        ],
        "created_at": order.created_at,
        "paid_at": order.paid_at,
    }


class OrderLedger:
    """
    Durable record of checkout attempts.

    Status only moves pending -> completed or pending -> failed. Both moves go
    through OrderRepo.transition_from_pending, a single conditional UPDATE, so
    concurrent captures of the same provider order cannot both win.
    """

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    #commands
    def create_pending(
        self,
        user_id: str,
        items,
        total_amount: Decimal,
        provider_order_id: str,
    ) -> OrderModel:
        if not items:
            raise ValidationError(
                "Order must contain at least one item",
                [{"index": None, "field": "items", "reason": "empty"}],
            )
        if total_amount is None or Decimal(total_amount) <= 0:
            raise ValidationError(
                "Order total must be greater than 0",
                [{"index": None, "field": "total_amount", "reason": "must be > 0"}],
            )

        order = OrderModel(
            user_id=user_id,
            provider_order_id=provider_order_id,
            status=OrderStatus.PENDING.value,
            total_amount=Decimal(total_amount),
            currency=settings.CURRENCY_CODE,
            items=_snapshot(items),
        )
        created = self.repo.create_order(order)

        logger.info(
            f"Order {created.id} pending for user {user_id}, "
            f"provider order {provider_order_id}, total {created.total_amount}, {len(created.items)} items"
        )
        return created

    def create_free(self, user_id: str, items) -> OrderModel:
        """Zero-total checkout: recorded straight as completed, no provider involved."""
        if not items:
            raise ValidationError(
                "Order must contain at least one item",
                [{"index": None, "field": "items", "reason": "empty"}],
            )

        now = datetime.now(timezone.utc)
        order = OrderModel(
            user_id=user_id,
            provider_order_id=f"FREE-{uuid4().hex}",
            status=OrderStatus.COMPLETED.value,
            total_amount=Decimal("0.00"),
            currency=settings.CURRENCY_CODE,
            payment_result={"status": "FREE"},
            created_at=now,
            paid_at=now,
            items=_snapshot(items),
        )
        created = self.repo.create_order(order)

        logger.info(f"Free order {created.id} completed for user {user_id}, {len(created.items)} items")
        return created

    def finalize(self, provider_order_id: str, user_id: str, capture_result) -> OrderModel:
        """
        pending -> completed, at most once per provider order.
        Raises AlreadyProcessed (order already terminal) or NotFound
        (no such order for this user) without writing anything.
        """
        rowcount = self.repo.transition_from_pending(
            provider_order_id,
            user_id,
            {
                "status": OrderStatus.COMPLETED.value,
                "paid_at": datetime.now(timezone.utc),
                "payer_email": capture_result.payer_email,
                "payment_result": {
                    "status": capture_result.status,
                    "details": capture_result.raw_details,
                },
            },
        )

        if rowcount == 0:
            self.repo.rollback()
            order = self.repo.get_by_provider_order_id(provider_order_id)
            if not order or order.user_id != user_id:
                raise NotFound(f"Order {provider_order_id} not found")
            logger.info(f"Order {provider_order_id} already {order.status}, finalize skipped")
            raise AlreadyProcessed(order)

        self.repo.commit()
        order = self.repo.get_by_provider_order_id(provider_order_id)
        logger.info(f"Order {order.id} completed (provider order {provider_order_id})")
        return order

    def mark_failed(self, provider_order_id: str, user_id: str) -> None:
        rowcount = self.repo.transition_from_pending(
            provider_order_id,
            user_id,
            {"status": OrderStatus.FAILED.value},
        )
        if rowcount == 0:
            self.repo.rollback()
            logger.info(f"Order {provider_order_id} not pending, mark_failed skipped")
            return

        self.repo.commit()
        logger.info(f"Order {provider_order_id} marked failed")

    def expire_stale(self, older_than: datetime, is_in_flight: Callable[[str], bool] | None = None) -> int:
        """
        Fail pending orders created before ``older_than``; returns how many moved.
        Orders for which ``is_in_flight(provider_order_id)`` is true are left alone.
        """
        expired = 0
        for order in self.repo.list_pending_before(older_than):
            if is_in_flight and is_in_flight(order.provider_order_id):
                logger.info(f"Order {order.provider_order_id} has a capture in flight, not expiring")
                continue
            expired += self.repo.transition_from_pending(
                order.provider_order_id,
                order.user_id,
                {"status": OrderStatus.FAILED.value},
            )
        self.repo.commit()
        return expired

    #queries
    def list_by_user(self, user_id: str) -> List[OrderModel]:
        return self.repo.list_by_user(user_id)

    def get_by_id(self, order_id: int, identity) -> OrderModel:
        order = self.repo.get_order(order_id)
        return self._owned(order, identity, str(order_id))

    def get_by_provider_order_id(self, provider_order_id: str, identity) -> OrderModel:
        order = self.repo.get_by_provider_order_id(provider_order_id)
        return self._owned(order, identity, provider_order_id)

    def _owned(self, order: OrderModel | None, identity, ref: str) -> OrderModel:
        if not order:
            raise NotFound(f"Order {ref} not found")
        if order.user_id != identity.user_id and not identity.is_admin:
            raise Forbidden("Access to this order is denied")
        return order
