# checkout/services/payment_gateway.py
"""
PayPal Orders v2 client.

- one instance per credential set; it owns its bearer token cache
- every public method is a coroutine, the blocking HTTP call runs in a worker thread
- create/capture move money and are never retried, except once after a 401
  with a freshly fetched token
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests
from requests import RequestException

from checkout.domain.errors import GatewayError
from checkout.utils import settings
from checkout.utils.logging import get_logger
from checkout.utils.retry import http_retry

logger = get_logger(__name__)

#refresh a bit before the provider says the token dies
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)
#used when the token response carries no usable expires_in
DEFAULT_TOKEN_TTL_SECONDS = 300


@dataclass
class AccessToken:
    value: str
    expires_at: datetime
    margin: timedelta = TOKEN_EXPIRY_MARGIN

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at - self.margin


@dataclass
class ProviderOrderRef:
    id: str
    approval_url: Optional[str]
    status: Optional[str] = None


@dataclass
class CaptureResult:
    status: str
    payer_email: Optional[str]
    raw_details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return (self.status or "").upper() == "COMPLETED"


def _money(value: Decimal) -> str:
    return f"{Decimal(value).quantize(Decimal('0.01')):.2f}"


def _response_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class PayPalClient:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        base_url: str | None = None,
        currency: str | None = None,
        brand_name: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.PAYPAL_CLIENT_SECRET
        self.base_url = (base_url or settings.PAYPAL_BASE_URL).rstrip("/")
        self.currency = currency or settings.CURRENCY_CODE
        self.brand_name = brand_name or settings.BRAND_NAME
        self.timeout = timeout or settings.PAYPAL_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self._token: AccessToken | None = None

    #token
    async def get_access_token(self) -> AccessToken:
        if self._token and self._token.is_valid():
            return self._token

        #concurrent refreshes are harmless, last one wins
        self._token = await asyncio.to_thread(self._fetch_token)
        return self._token

    def invalidate_token(self) -> None:
        self._token = None

    @http_retry()
    def _request_token(self) -> requests.Response:
        url = f"{self.base_url}/v1/oauth2/token"
        logger.info(f"PayPal POST {url}")
        return self.session.post(
            url,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

    def _fetch_token(self) -> AccessToken:
        try:
            resp = self._request_token()
        except RequestException as e:
            raise GatewayError(f"PayPal token request failed: {e}") from e

        if not resp.ok:
            raise GatewayError(
                "PayPal token request rejected",
                status_code=resp.status_code,
                body=_response_body(resp),
            )

        data = resp.json()
        expires_in = int(data.get("expires_in") or 0)
        if expires_in <= 0:
            logger.warning(f"PayPal token without expires_in, assuming {DEFAULT_TOKEN_TTL_SECONDS}s")
            expires_in = DEFAULT_TOKEN_TTL_SECONDS

        return AccessToken(
            value=data["access_token"],
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            #short lived tokens keep half their lifetime usable
            margin=min(TOKEN_EXPIRY_MARGIN, timedelta(seconds=expires_in) / 2),
        )

    #orders
    async def create_provider_order(
        self,
        total_amount: Decimal,
        item_descriptions: List[Dict[str, Any]],
        return_url: str,
        cancel_url: str,
    ) -> ProviderOrderRef:
        """
        item_descriptions: [{"name", "unit_amount" (Decimal), "quantity", "sku"?}]
        Returns the provider order id and the buyer approval link.
        """
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": self.currency,
                        "value": _money(total_amount),
                        "breakdown": {
                            "item_total": {
                                "currency_code": self.currency,
                                "value": _money(total_amount),
                            }
                        },
                    },
                    "items": [self._line_item(d) for d in item_descriptions],
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "shipping_preference": "NO_SHIPPING",
                "user_action": "PAY_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }

        data = await self._call("POST", "/v2/checkout/orders", payload, action="create order")

        approval_url = next(
            (
                link.get("href")
                for link in data.get("links") or []
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        logger.info(f"PayPal order {data.get('id')} created, status={data.get('status')}")
        return ProviderOrderRef(id=data["id"], approval_url=approval_url, status=data.get("status"))

    def _line_item(self, description: Dict[str, Any]) -> Dict[str, Any]:
        item = {
            "name": str(description["name"])[:127],
            "quantity": str(int(description["quantity"])),
            "category": "DIGITAL_GOODS",
            "unit_amount": {
                "currency_code": self.currency,
                "value": _money(description["unit_amount"]),
            },
        }
        if description.get("sku"):
            item["sku"] = str(description["sku"])[:127]
        return item

    async def capture_provider_order(self, provider_order_id: str) -> CaptureResult:
        data = await self._call(
            "POST",
            f"/v2/checkout/orders/{provider_order_id}/capture",
            {},
            action="capture order",
        )
        payer_email = (data.get("payer") or {}).get("email_address")
        logger.info(f"PayPal order {provider_order_id} capture status={data.get('status')}")
        return CaptureResult(status=data.get("status") or "", payer_email=payer_email, raw_details=data)

    async def get_provider_order(self, provider_order_id: str) -> CaptureResult:
        """Current state of a provider order, same shape as a capture result."""
        data = await self._call(
            "GET",
            f"/v2/checkout/orders/{provider_order_id}",
            None,
            action="get order",
        )
        payer_email = (data.get("payer") or {}).get("email_address")
        logger.info(f"PayPal order {provider_order_id} status={data.get('status')}")
        return CaptureResult(status=data.get("status") or "", payer_email=payer_email, raw_details=data)

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]], action: str) -> Dict[str, Any]:
        token = await self.get_access_token()
        resp = await asyncio.to_thread(self._send, method, path, payload, token.value, action)

        if resp.status_code == 401:
            #token revoked or expired early, refresh and try exactly once more
            logger.warning(f"PayPal rejected token on {action}, refreshing")
            self.invalidate_token()
            token = await self.get_access_token()
            resp = await asyncio.to_thread(self._send, method, path, payload, token.value, action)

        if not resp.ok:
            raise GatewayError(
                f"PayPal {action} failed",
                status_code=resp.status_code,
                body=_response_body(resp),
            )
        return resp.json()

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]], token: str, action: str) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"PayPal {method} {url}")
        try:
            return self.session.request(
                method,
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Prefer": "return=representation",
                },
                timeout=self.timeout,
            )
        except RequestException as e:
            raise GatewayError(f"PayPal {action} request failed: {e}") from e
