# checkout/services/checkout_service.py
import asyncio
from decimal import Decimal
from typing import Any, Dict, List
from uuid import uuid4

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from checkout.data.models.order import OrderModel, OrderStatus
from checkout.domain.errors import (
    AlreadyProcessed,
    ConflictError,
    EmptyCart,
    Forbidden,
    GatewayError,
    InvalidAmount,
    OrderClosedAfterPayment,
    PaymentIncomplete,
)
from checkout.services.cart_service import CartService, line_total
from checkout.services.fulfillment_service import FulfillmentService, SignedDownloadLink
from checkout.services.lock_service import LockService
from checkout.services.notification_service import NotificationDispatcher
from checkout.services.order_ledger import OrderLedger, order_to_dict
from checkout.services.payment_gateway import CaptureResult, PayPalClient
from checkout.utils import settings
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutOrchestrator:
    """
    Checkout use cases:

    create_order: cart -> provider order -> pending ledger entry
    capture_order: provider capture -> ledger finalize -> clear cart
        -> download links -> confirmation email

    capture is safe to call repeatedly; only the request that moves the
    ledger entry out of ``pending`` fulfills.
    """

    def __init__(
        self,
        carts: CartService,
        ledger: OrderLedger,
        gateway: PayPalClient,
        fulfillment: FulfillmentService,
        notifier: NotificationDispatcher,
        lock_service: LockService | None = None,
        allow_free_orders: bool | None = None,
    ):
        self.carts = carts
        self.ledger = ledger
        self.gateway = gateway
        self.fulfillment = fulfillment
        self.notifier = notifier
        self.lock_service = lock_service
        self.allow_free_orders = (
            settings.ALLOW_FREE_ORDERS if allow_free_orders is None else allow_free_orders
        )

    async def create_order(
        self,
        identity,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> Dict[str, Any]:
        user_id = identity.user_id
        items = await asyncio.to_thread(self.carts.get_items, user_id)
        if not items:
            raise EmptyCart()

        total = line_total(items)
        if total < 0:
            raise InvalidAmount(f"Order total {total} is negative")

        if total == 0:
            if not self.allow_free_orders:
                raise InvalidAmount("Order total must be greater than 0")
            return await self._complete_free_order(identity, items)

        ref = await self.gateway.create_provider_order(
            total_amount=total,
            item_descriptions=[
                {
                    "name": f"{i.title} - {i.attribution_label}",
                    "sku": i.catalog_item_id,
                    "unit_amount": Decimal(i.unit_price),
                    "quantity": i.quantity,
                }
                for i in items
            ],
            return_url=return_url or settings.CHECKOUT_RETURN_URL,
            cancel_url=cancel_url or settings.CHECKOUT_CANCEL_URL,
        )

        order = await asyncio.to_thread(self.ledger.create_pending, user_id, items, total, ref.id)

        return {
            "provider_order_id": ref.id,
            "approval_url": ref.approval_url,
            "order": order_to_dict(order),
            "download_links": [],
        }

    async def capture_order(self, identity, provider_order_id: str) -> Dict[str, Any]:
        user_id = identity.user_id
        order = await self._load(identity, provider_order_id)
        if order.user_id != user_id:
            raise Forbidden("Only the buyer can capture this order")

        if order.status != OrderStatus.PENDING.value:
            logger.info(f"Capture replay for order {order.id} ({order.status})")
            return self._already_processed(order)

        holder = await asyncio.to_thread(self._acquire_lock, provider_order_id)
        try:
            #another request may have finished while we waited for the lock
            order = await self._load(identity, provider_order_id)
            if order.status != OrderStatus.PENDING.value:
                logger.info(f"Order {order.id} became {order.status} before capture, replaying")
                return self._already_processed(order)

            result = await self._capture(provider_order_id)

            if not result.is_completed:
                logger.warning(f"Capture of {provider_order_id} returned status {result.status}")
                await asyncio.to_thread(self.ledger.mark_failed, provider_order_id, user_id)
                raise PaymentIncomplete(result.status)

            try:
                order = await asyncio.to_thread(self.ledger.finalize, provider_order_id, user_id, result)
            except AlreadyProcessed as replay:
                if replay.order.status == OrderStatus.FAILED.value:
                    logger.error(
                        f"Order {provider_order_id} was charged after it was closed as failed: "
                        f"capture status={result.status} details={result.raw_details}"
                    )
                    raise OrderClosedAfterPayment(provider_order_id)
                return self._already_processed(replay.order)

            links = await self._fulfill(identity, order, clear_cart_of=user_id)
        finally:
            await asyncio.to_thread(self._release_lock, provider_order_id, holder)

        return {
            "order": order_to_dict(order),
            "download_links": [link.to_dict() for link in links],
            "already_processed": False,
        }

    def list_orders(self, identity) -> List[Dict[str, Any]]:
        return [order_to_dict(o) for o in self.ledger.list_by_user(identity.user_id)]

    def get_order(self, identity, order_id: int) -> Dict[str, Any]:
        return order_to_dict(self.ledger.get_by_id(order_id, identity))

    async def _load(self, identity, provider_order_id: str) -> OrderModel:
        return await asyncio.to_thread(self.ledger.get_by_provider_order_id, provider_order_id, identity)

    async def _capture(self, provider_order_id: str) -> CaptureResult:
        try:
            return await self.gateway.capture_provider_order(provider_order_id)
        except GatewayError as e:
            if not e.already_captured:
                #order stays pending, caller may retry
                logger.error(
                    f"Capture of {provider_order_id} failed: provider status={e.status_code} body={e.body}"
                )
                raise

        #an earlier capture went through on the provider side but never reached the ledger
        logger.warning(f"Order {provider_order_id} already captured at the provider, reading its state")
        return await self.gateway.get_provider_order(provider_order_id)

    async def _complete_free_order(self, identity, items) -> Dict[str, Any]:
        order = await asyncio.to_thread(self.ledger.create_free, identity.user_id, items)
        links = await self._fulfill(identity, order, clear_cart_of=identity.user_id)

        return {
            "provider_order_id": order.provider_order_id,
            "approval_url": None,
            "order": order_to_dict(order),
            "download_links": [link.to_dict() for link in links],
        }

    async def _fulfill(self, identity, order: OrderModel, clear_cart_of: str) -> List[SignedDownloadLink]:
        try:
            await asyncio.to_thread(self.carts.clear, clear_cart_of)
        except SQLAlchemyError:
            #payment is done, a stale cart is not worth failing the response
            self.carts.repo.rollback()
            logger.exception(f"Order {order.id}: clearing cart of user {clear_cart_of} failed")

        #catalog lookups and signing block, keep them off the event loop
        links = await asyncio.to_thread(self.fulfillment.resolve_download_links, order)
        await self.notifier.send_order_confirmation(identity, order, links)
        return links

    def _already_processed(self, order: OrderModel) -> Dict[str, Any]:
        return {
            "order": order_to_dict(order),
            "download_links": [],
            "already_processed": True,
        }

    def _acquire_lock(self, provider_order_id: str) -> str | None:
        if not self.lock_service:
            return None

        holder = uuid4().hex
        try:
            locked = self.lock_service.acquire_capture_lock(
                provider_order_id=provider_order_id,
                holder=holder,
                ttl=settings.CAPTURE_LOCK_TTL_SECONDS,
            )
        except RedisError as e:
            #ledger update is still atomic, go on without the lock
            logger.warning(f"Capture lock unavailable for {provider_order_id}: {e}")
            return None

        if not locked:
            raise ConflictError("A capture for this order is already in progress")
        return holder

    def _release_lock(self, provider_order_id: str, holder: str | None) -> None:
        if not holder:
            return
        try:
            self.lock_service.release_capture_lock(provider_order_id, holder)
        except RedisError as e:
            logger.warning(f"Releasing capture lock for {provider_order_id} failed: {e}")
