"""In-memory fakes for the external collaborators.

They expose the same methods as the real clients (PayPal, catalog, R2 signer,
SMTP transport) and record every call so tests can count side effects.
"""

from __future__ import annotations

from typing import Any, Dict, List

from checkout.domain.errors import GatewayError
from checkout.services.payment_gateway import CaptureResult, ProviderOrderRef


class FakeGateway:

    def __init__(self, capture_status: str = "COMPLETED", payer_email: str = "buyer@example.com") -> None:
        self.capture_status = capture_status
        self.payer_email = payer_email
        self.create_error: GatewayError | None = None
        self.capture_error: GatewayError | None = None
        #runs before the capture returns, e.g. to simulate a racing request
        self.on_capture = None
        self.created: List[Dict[str, Any]] = []
        self.captured: List[str] = []
        self.fetched: List[str] = []
        #state reported by GET /v2/checkout/orders/{id}
        self.provider_status = "COMPLETED"
        self._next = 1

    async def create_provider_order(self, total_amount, item_descriptions, return_url, cancel_url) -> ProviderOrderRef:
        if self.create_error:
            raise self.create_error
        provider_order_id = f"PP-{self._next:04d}"
        self._next += 1
        self.created.append({
            "id": provider_order_id,
            "total_amount": total_amount,
            "item_descriptions": item_descriptions,
            "return_url": return_url,
            "cancel_url": cancel_url,
        })
        return ProviderOrderRef(
            id=provider_order_id,
            approval_url=f"https://www.sandbox.paypal.com/checkoutnow?token={provider_order_id}",
            status="CREATED",
        )

    async def capture_provider_order(self, provider_order_id: str) -> CaptureResult:
        self.captured.append(provider_order_id)
        if self.on_capture:
            self.on_capture(provider_order_id)
        if self.capture_error:
            raise self.capture_error
        return CaptureResult(
            status=self.capture_status,
            payer_email=self.payer_email,
            raw_details={"id": provider_order_id, "status": self.capture_status},
        )

    async def get_provider_order(self, provider_order_id: str) -> CaptureResult:
        self.fetched.append(provider_order_id)
        return CaptureResult(
            status=self.provider_status,
            payer_email=self.payer_email,
            raw_details={"id": provider_order_id, "status": self.provider_status},
        )


class FakeCatalogClient:

    def __init__(self, asset_keys: Dict[str, str | None] | None = None) -> None:
        self.asset_keys = asset_keys or {}
        self.lookups: List[str] = []

    def fetch_asset_key(self, catalog_item_id: str) -> str | None:
        self.lookups.append(catalog_item_id)
        return self.asset_keys.get(catalog_item_id)


class FakeSigner:

    def __init__(self) -> None:
        self.signed: List[tuple[str, int]] = []

    def sign(self, key: str, ttl_seconds: int) -> str:
        self.signed.append((key, ttl_seconds))
        return f"https://files.example.com/{key}?X-Amz-Expires={ttl_seconds}&X-Amz-Signature=fake"


class FakeMailTransport:

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Dict[str, str]] = []

    async def send(self, recipient: str, subject: str, html: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append({"recipient": recipient, "subject": subject, "html": html})
