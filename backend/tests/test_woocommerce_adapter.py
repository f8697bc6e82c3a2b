from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from atelier.adapters.woocommerce import WooCommerceOrderSource, get_order_source, parse_order
from atelier.config import get_settings
from atelier.errors import UpstreamNotConfiguredError


def raw_order(order_id, **overrides):
    data = {
        "id": order_id,
        "number": str(order_id),
        "status": "processing",
        "date_created": "2024-05-10T09:30:00",
        "total": "120.00",
        "billing": {"first_name": "Camille", "last_name": "Durand", "email": "camille@example.com", "country": "FR"},
        "shipping": {"country": "FR"},
        "customer_note": "",
        "line_items": [{
            "id": order_id * 10,
            "product_id": 55,
            "variation_id": 0,
            "name": "Robe en soie",
            "quantity": 1,
            "price": 120,
            "meta_data": [{"id": 9, "key": "Taille", "value": "M", "display_key": "Taille"}],
        }],
        "shipping_lines": [{"method_id": "flat_rate", "method_title": "DHL Express", "total": "0.00"}],
    }
    data.update(overrides)
    return data


def make_source(handler, **settings):
    source = WooCommerceOrderSource(
        "https://shop.test/", "ck_test", "cs_test", transport=httpx.MockTransport(handler)
    )
    source.settings = get_settings().model_copy(update={"SYNC_PAGE_DELAY": 0, **settings})
    return source


async def collect(source, after=None, statuses=("processing", "completed")):
    return [page async for page in source.iter_order_pages(after, statuses)]


def test_parse_order():
    order = parse_order(raw_order(1001, customer_note="Merci"))

    assert order.order_id == 1001
    assert order.date_created == datetime(2024, 5, 10, 9, 30)
    assert order.total == Decimal("120.00")
    assert order.customer_note == "Merci"
    item = order.line_items[0]
    assert (item.line_item_id, item.product_id, item.variation_id) == (10010, 55, None)
    assert item.meta_data == [{"key": "Taille", "value": "M"}]
    assert order.shipping_lines[0].method_title == "DHL Express"


def test_missing_credentials_rejected():
    with pytest.raises(ValueError):
        WooCommerceOrderSource("https://shop.test", "ck_test", "")


def test_unconfigured_source():
    settings = get_settings().model_copy(update={"WOOCOMMERCE_CONSUMER_KEY": None})
    with patch("atelier.adapters.woocommerce.get_settings", return_value=settings):
        with pytest.raises(UpstreamNotConfiguredError):
            get_order_source()


@pytest.mark.asyncio
async def test_pages_until_short_page():
    requests = []

    def handler(request):
        requests.append(request)
        page = int(request.url.params["page"])
        body = {1: [raw_order(1), raw_order(2)], 2: [raw_order(3)]}[page]
        return httpx.Response(200, json=body)

    source = make_source(handler, SYNC_PAGE_SIZE=2)
    pages = await collect(source, after=datetime(2024, 5, 1, 0, 0, 0, 123))

    assert [[o.order_id for o in page] for page in pages] == [[1, 2], [3]]
    first = requests[0]
    assert first.url.path == "/wp-json/wc/v3/orders"
    assert first.url.params["status"] == "processing,completed"
    assert first.url.params["after"] == "2024-05-01T00:00:00"
    assert first.url.params["per_page"] == "2"
    assert first.headers["authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_stops_on_empty_page():
    def handler(request):
        page = int(request.url.params["page"])
        return httpx.Response(200, json=[raw_order(1), raw_order(2)] if page == 1 else [])

    pages = await collect(make_source(handler, SYNC_PAGE_SIZE=2))

    assert len(pages) == 1


@pytest.mark.asyncio
async def test_http_error_keeps_earlier_pages():
    def handler(request):
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[raw_order(1), raw_order(2)])
        return httpx.Response(503)

    pages = await collect(make_source(handler, SYNC_PAGE_SIZE=2))

    assert [[o.order_id for o in page] for page in pages] == [[1, 2]]


@pytest.mark.asyncio
async def test_network_error_ends_iteration():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert await collect(make_source(handler)) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("response,expected", [
    (httpx.Response(200, json=[]), False),
    (httpx.Response(200, json=[{"id": 1, "date": "2024-05-10T09:30:00"}]), True),
    (httpx.Response(500), True),
])
async def test_probe(response, expected):
    seen = []

    def handler(request):
        seen.append(request)
        return response

    assert await make_source(handler).probe_orders(None, ("failed",)) is expected
    assert seen[0].url.params["per_page"] == "1"
    assert seen[0].url.params["_fields"] == "id,date"


@pytest.mark.asyncio
async def test_probe_assumes_orders_when_unreachable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    assert await make_source(handler).probe_orders(None, ("processing",)) is True


@pytest.mark.asyncio
async def test_get_order():
    def handler(request):
        if request.url.path.endswith("/orders/1001"):
            return httpx.Response(200, json=raw_order(1001))
        return httpx.Response(404, json={"code": "woocommerce_rest_shop_order_invalid_id"})

    source = make_source(handler)

    assert (await source.get_order(1001)).order_number == "1001"
    assert await source.get_order(404) is None


@pytest.mark.asyncio
async def test_get_product():
    def handler(request):
        if request.url.path.endswith("/products/55"):
            return httpx.Response(200, json={
                "id": 55,
                "permalink": "https://shop.test/produit/robe",
                "images": [{"src": "https://shop.test/robe.jpg"}, {"src": "https://shop.test/robe-2.jpg"}],
            })
        if request.url.path.endswith("/products/56"):
            return httpx.Response(200, json={"id": 56, "permalink": "https://shop.test/produit/pull", "images": []})
        return httpx.Response(404)

    source = make_source(handler)

    product = await source.get_product(55)
    assert product.permalink == "https://shop.test/produit/robe"
    assert product.image_url == "https://shop.test/robe.jpg"
    assert (await source.get_product(56)).image_url is None
    assert await source.get_product(57) is None


@pytest.mark.asyncio
async def test_download_image_follows_redirects():
    def handler(request):
        if request.url.path == "/old.jpg":
            return httpx.Response(301, headers={"location": "https://cdn.test/new.jpg"})
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png; charset=binary"})

    image = await make_source(handler).download_image("https://shop.test/old.jpg")

    assert image.content_type == "image/png"
    assert image.data == b"\x89PNG"


@pytest.mark.asyncio
async def test_download_image_failure():
    source = make_source(lambda request: httpx.Response(404))
    assert await source.download_image("https://shop.test/missing.jpg") is None
