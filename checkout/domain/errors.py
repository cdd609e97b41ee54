"""Checkout error taxonomy.

Every business or provider failure is a ``CheckoutError`` subclass carrying the
HTTP status it maps to, so routers can translate them uniformly.
"""

from typing import Any, Dict, List, Optional


class CheckoutError(Exception):
    """Base class for all checkout errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> Any:
        return self.message


class ValidationError(CheckoutError):
    """Malformed cart or order input. ``errors`` lists every offending field."""

    status_code = 422

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @property
    def detail(self) -> Any:
        return {"message": self.message, "errors": self.errors}


class EmptyCart(CheckoutError):
    status_code = 400

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidAmount(CheckoutError):
    status_code = 400


class Forbidden(CheckoutError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFound(CheckoutError):
    status_code = 404


class ConflictError(CheckoutError):
    status_code = 409


class AuthError(CheckoutError):
    status_code = 401

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class AlreadyProcessed(CheckoutError):
    """Not a failure: the order already reached a terminal state.

    Raised by the ledger instead of mutating anything, so a replayed capture
    can return the existing order.
    """

    status_code = 200

    def __init__(self, order: Any):
        super().__init__(f"Order {getattr(order, 'provider_order_id', '?')} already processed")
        self.order = order


class GatewayError(CheckoutError):
    """Payment provider failure.

    ``status_code`` is the provider's HTTP status (None for transport errors)
    and ``body`` its raw error payload. Both are for operators only; callers
    get ``http_status`` and a generic message.
    """

    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def issues(self) -> List[str]:
        """PayPal issue codes from an error body, e.g. ``ORDER_ALREADY_CAPTURED``."""
        if not isinstance(self.body, dict):
            return []
        return [
            d["issue"] for d in self.body.get("details") or []
            if isinstance(d, dict) and d.get("issue")
        ]

    @property
    def already_captured(self) -> bool:
        if self.issues:
            return "ORDER_ALREADY_CAPTURED" in self.issues
        return "ORDER_ALREADY_CAPTURED" in str(self.body or "")

    @property
    def detail(self) -> Any:
        return "Payment provider request failed"


class PaymentIncomplete(CheckoutError):
    status_code = 402

    def __init__(self, provider_status: str):
        super().__init__(f"Payment not completed (status={provider_status})")
        self.provider_status = provider_status

    @property
    def detail(self) -> Any:
        return {"message": self.message, "provider_status": self.provider_status}


class OrderClosedAfterPayment(CheckoutError):
    """The provider took the money but the ledger had already failed the order."""

    status_code = 409

    def __init__(self, provider_order_id: str):
        super().__init__(
            f"Payment for order {provider_order_id} was captured after the order was closed; contact support"
        )
        self.provider_order_id = provider_order_id
