import asyncio
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import AsyncIterator, Dict, List, Optional, Sequence

import httpx

from atelier.adapters.base import (
    BaseOrderSource,
    PlatformAddress,
    PlatformImage,
    PlatformLineItem,
    PlatformOrder,
    PlatformProductDetail,
    PlatformShippingLine,
)
from atelier.config import get_settings
from atelier.errors import UpstreamNotConfiguredError

logger = logging.getLogger(__name__)


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _to_int(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "", 0, "0") else None
    except (TypeError, ValueError):
        return None


def _parse_date(value) -> datetime:
    if not value:
        return datetime.now()
    # WooCommerce returns site-local ISO-8601 without offset
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


def _parse_address(data: Optional[Dict]) -> PlatformAddress:
    data = data or {}
    return PlatformAddress(
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        email=data.get("email") or None,
        phone=data.get("phone") or None,
        address_1=data.get("address_1") or "",
        postcode=data.get("postcode") or "",
        city=data.get("city") or "",
        country=data.get("country") or "",
    )


def _parse_meta(meta: Optional[List[Dict]]) -> List[Dict]:
    return [
        {"key": m.get("key"), "value": m.get("value")}
        for m in (meta or [])
        if isinstance(m, dict)
    ]


def parse_order(item: Dict) -> PlatformOrder:
    """Normalize a raw WooCommerce order payload."""
    return PlatformOrder(
        order_id=int(item["id"]),
        order_number=str(item.get("number") or item["id"]),
        status=item.get("status") or "",
        date_created=_parse_date(item.get("date_created")),
        total=_to_decimal(item.get("total")),
        billing=_parse_address(item.get("billing")),
        shipping=_parse_address(item.get("shipping")),
        customer_note=item.get("customer_note") or "",
        line_items=[
            PlatformLineItem(
                line_item_id=int(li["id"]),
                product_id=_to_int(li.get("product_id")),
                variation_id=_to_int(li.get("variation_id")),
                name=li.get("name") or "",
                quantity=int(li.get("quantity") or 1),
                price=_to_decimal(li.get("price")),
                meta_data=_parse_meta(li.get("meta_data")),
            )
            for li in item.get("line_items") or []
        ],
        shipping_lines=[
            PlatformShippingLine(
                method_id=sl.get("method_id") or "",
                method_title=sl.get("method_title") or "",
                total=_to_decimal(sl.get("total")),
                meta_data=_parse_meta(sl.get("meta_data")),
            )
            for sl in item.get("shipping_lines") or []
        ],
    )


class WooCommerceOrderSource(BaseOrderSource):
    """
    Order source for WooCommerce (REST API V3).

    ``transport`` lets tests plug an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not consumer_key or not consumer_secret:
            raise ValueError("WooCommerce source missing url, key, or secret")
        self.base_url = f"{url.rstrip('/')}/wp-json/wc/v3/"
        self.auth = (consumer_key, consumer_secret)
        self.transport = transport
        self.settings = get_settings()

    @property
    def platform_name(self) -> str:
        return "woocommerce"

    def _get_client(self, timeout: float) -> httpx.AsyncClient:
        """Helper to create an authenticated client."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self.auth,
            timeout=timeout,
            transport=self.transport,
            headers={"Accept": "application/json", "User-Agent": "MaisonCleo-Atelier/1.0"},
        )

    @staticmethod
    def _window_params(after: Optional[datetime], statuses: Sequence[str]) -> Dict:
        params = {
            "status": ",".join(statuses),
            "orderby": "date",
            "order": "desc",
        }
        if after is not None:
            params["after"] = after.replace(microsecond=0).isoformat()
        return params

    async def probe_orders(self, after: Optional[datetime], statuses: Sequence[str]) -> bool:
        params = self._window_params(after, statuses)
        params.update({"per_page": 1, "page": 1, "_fields": "id,date"})
        try:
            async with self._get_client(self.settings.SYNC_PROBE_TIMEOUT) as client:
                resp = await client.get("orders", params=params)
        except httpx.HTTPError as e:
            logger.warning(f"Order probe failed, assuming orders exist: {e}")
            return True
        if resp.status_code != 200:
            logger.warning(f"Order probe returned {resp.status_code}, assuming orders exist")
            return True
        data = resp.json()
        return not (isinstance(data, list) and len(data) == 0)

    async def iter_order_pages(
        self, after: Optional[datetime], statuses: Sequence[str]
    ) -> AsyncIterator[List[PlatformOrder]]:
        per_page = self.settings.SYNC_PAGE_SIZE
        page = 1
        async with self._get_client(self.settings.SYNC_PAGE_TIMEOUT) as client:
            while True:
                params = self._window_params(after, statuses)
                params.update({"per_page": per_page, "page": page})
                try:
                    resp = await client.get("orders", params=params)
                except httpx.HTTPError as e:
                    logger.error(f"Order fetch failed on page {page}: {e}")
                    break
                if resp.status_code != 200:
                    logger.error(f"Order fetch failed on page {page}: HTTP {resp.status_code}")
                    break

                data = resp.json()
                if not data:
                    break
                yield [parse_order(item) for item in data]

                if len(data) < per_page:
                    break
                page += 1
                await asyncio.sleep(self.settings.SYNC_PAGE_DELAY)

    async def get_order(self, order_id: int) -> Optional[PlatformOrder]:
        try:
            async with self._get_client(self.settings.SYNC_PAGE_TIMEOUT) as client:
                resp = await client.get(f"orders/{order_id}")
        except httpx.HTTPError as e:
            logger.error(f"Order {order_id} fetch failed: {e}")
            return None
        if resp.status_code != 200:
            logger.warning(f"Order {order_id} fetch returned {resp.status_code}")
            return None
        return parse_order(resp.json())

    async def get_product(self, product_id: int) -> Optional[PlatformProductDetail]:
        try:
            async with self._get_client(self.settings.PRODUCT_FETCH_TIMEOUT) as client:
                resp = await client.get(
                    f"products/{product_id}", params={"_fields": "id,permalink,images"}
                )
            if resp.status_code != 200:
                return None
            item = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Product {product_id} detail unavailable: {e}")
            return None

        images = item.get("images") or []
        return PlatformProductDetail(
            product_id=product_id,
            permalink=item.get("permalink"),
            image_url=images[0].get("src") if images else None,
        )

    async def download_image(self, url: str) -> Optional[PlatformImage]:
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.IMAGE_FETCH_TIMEOUT,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Image download failed for {url}: {e}")
            return None
        if resp.status_code != 200 or not resp.content:
            return None
        content_type = resp.headers.get("content-type") or "image/jpeg"
        return PlatformImage(content_type=content_type.split(";")[0], data=resp.content)


def get_order_source() -> WooCommerceOrderSource:
    """Build the configured WooCommerce source."""
    settings = get_settings()
    if not settings.woocommerce_configured:
        raise UpstreamNotConfiguredError(
            "WooCommerce is not configured, set WOOCOMMERCE_CONSUMER_KEY and WOOCOMMERCE_CONSUMER_SECRET"
        )
    return WooCommerceOrderSource(
        settings.WOOCOMMERCE_URL,
        settings.WOOCOMMERCE_CONSUMER_KEY,
        settings.WOOCOMMERCE_CONSUMER_SECRET,
    )
