# checkout/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, List
from decimal import Decimal
from datetime import datetime


class CartReplaceIn(BaseModel):
    """Body of PUT /cart. Items are validated by CartService so every problem is reported."""

    items: List[Any]


class CartItemOut(BaseModel):
    catalog_item_id: str
    title: str
    attribution_label: str
    unit_price: Decimal
    quantity: int
    image_ref: str | None = None


class CartOut(BaseModel):
    cart_id: int
    user_id: str
    items: List[CartItemOut]
    total: Decimal
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderCreateIn(BaseModel):
    """Body of POST /orders/create; both urls default to the configured ones."""

    return_url: str | None = None
    cancel_url: str | None = None


class OrderCaptureIn(BaseModel):
    provider_order_id: str = Field(..., min_length=1, max_length=64)


class OrderItemOut(BaseModel):
    catalog_item_id: str
    title: str
    attribution_label: str
    unit_price: Decimal
    quantity: int
    image_ref: str | None = None


class OrderOut(BaseModel):
    id: int
    user_id: str
    provider_order_id: str
    status: str
    total_amount: Decimal
    currency: str
    payer_email: str | None = None
    items: List[OrderItemOut]
    created_at: datetime
    paid_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DownloadLinkOut(BaseModel):
    title: str
    attribution_label: str
    url: str
    expires_at: datetime


class OrderCreateOut(BaseModel):
    provider_order_id: str
    approval_url: str | None = None
    order: OrderOut
    download_links: List[DownloadLinkOut] = Field(default_factory=list)


class OrderCaptureOut(BaseModel):
    order: OrderOut
    download_links: List[DownloadLinkOut] = Field(default_factory=list)
    already_processed: bool = False


class HealthOut(BaseModel):
    status: str
    database: str
