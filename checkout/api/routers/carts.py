#checkout/api/routers/carts.py
from fastapi import APIRouter, Depends

from checkout.api import to_http_error
from checkout.api.deps import get_cart_service, require_user
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import CartOut, CartReplaceIn
from checkout.services.auth import Identity
from checkout.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    user: Identity = Depends(require_user),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get(user.user_id)


@router.put("", response_model=CartOut)
def replace_cart(
    payload: CartReplaceIn,
    user: Identity = Depends(require_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.replace(user.user_id, payload.items)
    except CheckoutError as e:
        raise to_http_error(e)


@router.delete("", response_model=CartOut)
def clear_cart(
    user: Identity = Depends(require_user),
    svc: CartService = Depends(get_cart_service),
):
    return svc.clear(user.user_id)
