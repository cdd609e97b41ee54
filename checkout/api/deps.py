# checkout/api/deps.py
from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from checkout.data.database import get_db
from checkout.domain.errors import AuthError
from checkout.services.auth import Identity, JWTAuthenticator
from checkout.services.cart_service import CartService
from checkout.services.catalog_client import CatalogClient
from checkout.services.checkout_service import CheckoutOrchestrator
from checkout.services.fulfillment_service import FulfillmentService, ObjectStorageSigner
from checkout.services.lock_service import LockService
from checkout.services.notification_service import MailTransport, NotificationDispatcher
from checkout.services.order_ledger import OrderLedger
from checkout.services.payment_gateway import PayPalClient


#process wide collaborators; the PayPal client keeps its token between requests
@lru_cache
def get_authenticator() -> JWTAuthenticator:
    return JWTAuthenticator()


@lru_cache
def get_payment_gateway() -> PayPalClient:
    return PayPalClient()


@lru_cache
def get_lock_service() -> LockService:
    return LockService()


@lru_cache
def get_catalog_client() -> CatalogClient:
    return CatalogClient()


@lru_cache
def get_storage_signer() -> ObjectStorageSigner:
    return ObjectStorageSigner()


@lru_cache
def get_mail_transport() -> MailTransport:
    return MailTransport()


def require_user(
    request: Request,
    authenticator: JWTAuthenticator = Depends(get_authenticator),
) -> Identity:
    try:
        return authenticator.identify(request)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_checkout_service(
    db: Session = Depends(get_db),
    gateway: PayPalClient = Depends(get_payment_gateway),
    lock_service: LockService = Depends(get_lock_service),
    catalog_client: CatalogClient = Depends(get_catalog_client),
    signer: ObjectStorageSigner = Depends(get_storage_signer),
    transport: MailTransport = Depends(get_mail_transport),
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        carts=CartService(db),
        ledger=OrderLedger(db),
        gateway=gateway,
        fulfillment=FulfillmentService(catalog_client, signer),
        notifier=NotificationDispatcher(transport),
        lock_service=lock_service,
    )
