# checkout/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends

from checkout.api import to_http_error
from checkout.api.deps import get_checkout_service, require_user
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import (
    OrderCaptureIn,
    OrderCaptureOut,
    OrderCreateIn,
    OrderCreateOut,
    OrderOut,
)
from checkout.services.auth import Identity
from checkout.services.checkout_service import CheckoutOrchestrator

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/create", response_model=OrderCreateOut, status_code=201)
async def create_order(
    payload: OrderCreateIn | None = None,
    user: Identity = Depends(require_user),
    svc: CheckoutOrchestrator = Depends(get_checkout_service),
):
    """
    Starts checkout from the caller's cart.
    Paid carts return the provider approval url; free carts complete right away.
    """
    payload = payload or OrderCreateIn()
    try:
        return await svc.create_order(user, payload.return_url, payload.cancel_url)
    except CheckoutError as e:
        raise to_http_error(e)


@router.post("/capture", response_model=OrderCaptureOut)
async def capture_order(
    payload: OrderCaptureIn,
    user: Identity = Depends(require_user),
    svc: CheckoutOrchestrator = Depends(get_checkout_service),
):
    """
    Captures an approved provider order and returns the order plus fresh
    download links. Calling it again returns the stored order with
    already_processed=true.
    """
    try:
        return await svc.capture_order(user, payload.provider_order_id)
    except CheckoutError as e:
        raise to_http_error(e)


@router.get("", response_model=List[OrderOut])
def list_orders(
    user: Identity = Depends(require_user),
    svc: CheckoutOrchestrator = Depends(get_checkout_service),
):
    return svc.list_orders(user)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user: Identity = Depends(require_user),
    svc: CheckoutOrchestrator = Depends(get_checkout_service),
):
    try:
        return svc.get_order(user, order_id)
    except CheckoutError as e:
        raise to_http_error(e)
