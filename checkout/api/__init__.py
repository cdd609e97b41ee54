# checkout/api/__init__.py
from fastapi import HTTPException

from checkout.domain.errors import CheckoutError, GatewayError
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def to_http_error(e: CheckoutError) -> HTTPException:
    """Maps checkout errors to responses; provider diagnostics stay in the logs."""
    if isinstance(e, GatewayError):
        logger.error(f"Gateway error: {e.message} status={e.status_code} body={e.body}")
        return HTTPException(status_code=e.http_status, detail=e.detail)
    return HTTPException(status_code=e.status_code, detail=e.detail)
