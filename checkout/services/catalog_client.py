# checkout/services/catalog_client.py
import requests

from checkout.utils.retry import http_retry
from checkout.utils.settings import CATALOG_SERVICE_URL
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogClient:
    """Read-only view of the catalog service, used to find stored asset keys."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, catalog_item_id: str) -> dict | None:
        url = f"{self.base_url}/products/{catalog_item_id}"
        logger.info(f"CatalogClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def fetch_asset_key(self, catalog_item_id: str) -> str | None:
        product = self.fetch_product(catalog_item_id)
        if not product:
            return None
        return product.get("asset_key") or None
