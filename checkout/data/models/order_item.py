from sqlalchemy import Column, Integer, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from checkout.data.database import Base


class OrderItemModel(Base):
    """Snapshot of a cart line at checkout time; never re-priced."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)

    catalog_item_id = Column(String(64), nullable=False)
    title = Column(String(200), nullable=False)
    attribution_label = Column(String(200), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    image_ref = Column(String(500), nullable=True)

    order = relationship("OrderModel", back_populates="items")
