#import all models so SQLAlchemy registers them in Base.metadata

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_item import CartItemModel
from checkout.data.models.order import OrderModel, OrderStatus
from checkout.data.models.order_item import OrderItemModel

__all__ = ["CartModel", "CartItemModel", "OrderModel", "OrderStatus", "OrderItemModel"]
