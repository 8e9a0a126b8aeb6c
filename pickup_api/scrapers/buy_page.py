"""
pickup_api/scrapers/buy_page.py
═══════════════════════════════════════════════════════════════════════════════
Part discovery from apple.com buy pages.

Every /shop/buy-iphone/{family} page embeds a <script id="metrics"> JSON
blob whose data.products[] lists each orderable configuration with its
part number. extract_metrics() is the only place that knows about that
anchor; if Apple moves the payload, only it needs to change.

Families are fetched concurrently and merged in configured order. A family
that fails (404, missing block, bad JSON) contributes nothing. Zero parts in
total is fatal: there is nothing to ask the fulfillment API about.
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import json
import logging
from typing import Optional

from bs4 import BeautifulSoup

from pickup_api.core.config import get_config, shop_url
from pickup_api.core.http_client import apple_client

log = logging.getLogger("buy_page")

METRICS_SCRIPT_ID = "metrics"


class ScrapeError(Exception):
    """Upstream page or API did not give us usable data."""


def buy_page_url(conf: dict, family: str) -> str:
    return shop_url(conf, f"/shop/buy-iphone/{family}")


def extract_metrics(html: str) -> dict:
    """Locate the embedded metrics script and parse it as JSON."""
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.find("script", id=METRICS_SCRIPT_ID)
    if tag is None:
        raise ScrapeError("metrics script not found")
    try:
        return json.loads(tag.string or tag.get_text())
    except ValueError as ex:
        raise ScrapeError(f"failed to parse metrics JSON: {ex}") from ex


def _price(product: dict) -> Optional[float]:
    price = product.get("price")
    if isinstance(price, dict):
        return price.get("fullPrice")
    return None


def parse_parts(metrics: dict, family: str) -> list[dict]:
    products = ((metrics or {}).get("data") or {}).get("products") or []
    return [
        {
            "name":       p.get("name") or p.get("sku") or p["partNumber"],
            "partNumber": p["partNumber"],
            "sku":        p.get("sku") or None,
            "family":     family,
            "price":      _price(p),
        }
        for p in products
        if isinstance(p, dict) and p.get("partNumber") and p.get("category") == "iphone"
    ]


async def fetch_family_parts(conf: dict, family: str) -> list[dict]:
    url  = buy_page_url(conf, family)
    resp = await apple_client().get(url)
    if not resp.is_success:
        raise ScrapeError(f"Failed to fetch buy page {family}: {resp.status_code}")
    try:
        metrics = extract_metrics(resp.text)
    except ScrapeError as ex:
        raise ScrapeError(f"{ex} on {family}") from ex
    return parse_parts(metrics, family)


def merge_parts(part_lists: list[list[dict]]) -> list[dict]:
    """Flatten in order; first family to list a partNumber keeps it."""
    seen, out = set(), []
    for parts in part_lists:
        for p in parts:
            if p["partNumber"] not in seen:
                seen.add(p["partNumber"])
                out.append(p)
    return out


async def discover_parts(conf: Optional[dict] = None, families: Optional[list[str]] = None) -> list[dict]:
    conf     = conf or get_config()
    families = families if families is not None else conf["families"]

    results = await asyncio.gather(
        *(fetch_family_parts(conf, slug) for slug in families),
        return_exceptions=True,
    )

    part_lists = []
    for slug, res in zip(families, results):
        if isinstance(res, Exception):
            log.warning(f"Family {slug} skipped: {res}")
            continue
        if isinstance(res, BaseException):
            raise res
        log.info(f"Family {slug}: {len(res)} parts")
        part_lists.append(res)

    parts = merge_parts(part_lists)
    if not parts:
        raise ScrapeError("no iPhone parts discovered")
    return parts
