# checkout/services/fulfillment_service.py
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from requests import RequestException

from checkout.data.models.order import OrderModel
from checkout.services.catalog_client import CatalogClient
from checkout.utils import settings
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SignedDownloadLink:
    title: str
    attribution_label: str
    url: str
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ObjectStorageSigner:
    """Presigned GET urls against the R2 bucket (S3 API). Nothing is stored."""

    def __init__(
        self,
        bucket: str | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        client=None,
    ):
        self.bucket = bucket or settings.R2_BUCKET
        self._client = client
        self._client_kwargs = {
            "endpoint_url": endpoint_url or settings.R2_ENDPOINT_URL or None,
            "aws_access_key_id": access_key or settings.R2_ACCESS_KEY or None,
            "aws_secret_access_key": secret_key or settings.R2_SECRET_KEY or None,
            "region_name": "auto",
            "config": Config(signature_version="s3v4"),
        }

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("s3", **self._client_kwargs)
        return self._client

    def sign(self, key: str, ttl_seconds: int) -> str:
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )


class FulfillmentService:
    """
    Turns a paid order into short-lived download links.

    Items without an asset key, or whose key cannot be looked up or signed,
    are logged and left out; the rest of the order is still delivered.
    """

    def __init__(
        self,
        catalog_client: CatalogClient,
        signer: ObjectStorageSigner,
        ttl_seconds: int | None = None,
    ):
        self.catalog_client = catalog_client
        self.signer = signer
        self.ttl_seconds = ttl_seconds or settings.DOWNLOAD_LINK_TTL_SECONDS

    def resolve_download_links(self, order: OrderModel) -> List[SignedDownloadLink]:
        links: List[SignedDownloadLink] = []

        for item in order.items:
            try:
                asset_key = self.catalog_client.fetch_asset_key(item.catalog_item_id)
            except RequestException as e:
                logger.warning(
                    f"Order {order.id}: catalog lookup failed for item {item.catalog_item_id}: {e}"
                )
                continue

            if not asset_key:
                logger.warning(
                    f"Order {order.id}: no asset key for item {item.catalog_item_id}, skipping"
                )
                continue

            expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
            try:
                url = self.signer.sign(asset_key, self.ttl_seconds)
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Order {order.id}: signing {asset_key} failed: {e}")
                continue

            links.append(
                SignedDownloadLink(
                    title=item.title,
                    attribution_label=item.attribution_label,
                    url=url,
                    expires_at=expires_at,
                )
            )

        logger.info(f"Order {order.id}: {len(links)}/{len(order.items)} download links issued")
        return links
