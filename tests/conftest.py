"""Shared fixtures: a fake apple.com behind httpx.MockTransport."""

import json

import httpx
import pytest

from pickup_api.core import http_client
from pickup_api.core.config import APPLE_HEADERS


def buy_page_html(products: list[dict]) -> str:
    metrics = json.dumps({"data": {"products": products}}, ensure_ascii=False)
    return (
        "<html><head><title>購買 iPhone</title></head><body>"
        '<div id="root"></div>'
        f'<script type="application/json" id="metrics">{metrics}</script>'
        "</body></html>"
    )


def product(part_number: str, name: str = "", category: str = "iphone", **extra) -> dict:
    p = {"partNumber": part_number, "category": category, "sku": f"SKU-{part_number}"}
    if name:
        p["name"] = name
    p.update(extra)
    return p


def raw_store(number, name, city="台北市", parts=None, **extra) -> dict:
    s = {
        "storeNumber": number,
        "storeName":   name,
        "city":        city,
        "country":     "TW",
        "partsAvailability": parts or {},
    }
    s.update(extra)
    return s


def part_availability(buyable: bool, quote: str = "", display: str = "") -> dict:
    pa = {"buyability": {"isBuyable": buyable}}
    if display:
        pa["pickupDisplay"] = display
    if quote:
        pa["pickupSearchQuote"] = quote
    return pa


def fulfillment_body(stores: list[dict]) -> dict:
    return {"body": {"content": {"pickupMessage": {"stores": stores}}}}


class FakeApple:
    """Routes buy-page and fulfillment requests to canned responses."""

    def __init__(self):
        self.pages: dict[str, tuple[int, str]] = {}
        self.seeds: dict[str, tuple[int, object]] = {}
        self.calls: list[httpx.Request] = []

    def page(self, family: str, products: list[dict], status: int = 200) -> None:
        self.pages[family] = (status, buy_page_html(products))

    def raw_page(self, family: str, html: str, status: int = 200) -> None:
        self.pages[family] = (status, html)

    def seed(self, location: str, stores, status: int = 200) -> None:
        self.seeds[location] = (status, fulfillment_body(stores) if isinstance(stores, list) else stores)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path.endswith("/shop/fulfillment-messages"):
            status, body = self.seeds.get(request.url.params.get("location"), (404, {}))
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)
        family = path.rstrip("/").rsplit("/", 1)[-1]
        status, html = self.pages.get(family, (404, "<html>Not Found</html>"))
        return httpx.Response(status, text=html, headers={"content-type": "text/html; charset=utf-8"})

    def fulfillment_calls(self) -> list[httpx.Request]:
        return [c for c in self.calls if c.url.path.endswith("/shop/fulfillment-messages")]


@pytest.fixture
def fake_apple(monkeypatch):
    monkeypatch.setenv("APPLE_BASE", "https://apple.test")
    monkeypatch.setenv("REGION_PATH", "/tw")
    monkeypatch.setenv("FAMILIES", "iphone-17,iphone-17-pro")
    monkeypatch.setenv("LOCATION_SEEDS", "台北,高雄")

    fake = FakeApple()
    http_client.set_apple_client(httpx.AsyncClient(
        headers=APPLE_HEADERS,
        transport=httpx.MockTransport(fake.handler),
    ))
    yield fake
    http_client.set_apple_client(None)
