# checkout/repos/order_repo.py
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from checkout.data.models.order import OrderModel, OrderStatus


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_provider_order_id(self, provider_order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.provider_order_id == provider_order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_by_user(self, user_id: str) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars()
        )

    def list_pending_before(self, cutoff: datetime) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel).where(
                    OrderModel.status == OrderStatus.PENDING.value,
                    OrderModel.created_at < cutoff,
                )
            ).scalars()
        )

    def transition_from_pending(
        self,
        provider_order_id: str,
        user_id: str,
        new_data: Dict[str, Any],
    ) -> int:
        """Compare-and-set on the status column.

        UPDATE orders SET ... WHERE provider_order_id = :pid
            AND user_id = :uid AND status = 'pending'

        Returns rowcount; 0 means another request already moved the order
        (or it does not exist for this user) and nothing was written.
        """
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.provider_order_id == provider_order_id,
                OrderModel.user_id == user_id,
                OrderModel.status == OrderStatus.PENDING.value,
            )
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
