"""Shared fixtures: product pages and in-memory acquisition strategies."""
import asyncio
import json
from typing import List, Optional

import pytest

from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind


def product_page(
    name: Optional[str] = "Leather-Effect Bomber Jacket",
    brand: Optional[str] = "Northwind",
    price: Optional[str] = "250",
    currency: Optional[str] = "USD",
    images: Optional[List[str]] = None,
    category: Optional[str] = "Jackets",
    availability: Optional[str] = "https://schema.org/InStock",
) -> bytes:
    """A product page carrying a JSON-LD Product node built from the arguments."""
    if images is None:
        images = [
            "https://cdn.example.com/p/bomber-front.jpg",
            "https://cdn.example.com/p/bomber-back.jpg",
        ]
    product = {"@context": "https://schema.org", "@type": "Product"}
    if name:
        product["name"] = name
    if brand:
        product["brand"] = {"@type": "Brand", "name": brand}
    if images:
        product["image"] = images
    if category:
        product["category"] = category
    offer = {"@type": "Offer"}
    if price:
        offer["price"] = price
    if currency:
        offer["priceCurrency"] = currency
    if availability:
        offer["availability"] = availability
    product["offers"] = offer

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <title>Shop</title>
  <script type="application/ld+json">{json.dumps(product)}</script>
</head>
<body><main><p>Product details</p></main></body>
</html>""".encode("utf-8")


class FakeStrategy(AcquisitionStrategy):
    """
    Scripted strategy: waits `delay` seconds, then returns `body` or raises `error`.

    Records whether it was cancelled so tests can check teardown.
    """

    def __init__(
        self,
        strategy_id: str,
        body: bytes = b"",
        delay: float = 0.0,
        error: Optional[AcquisitionErrorKind] = None,
        status: int = 200,
        final_url: Optional[str] = None,
    ):
        super().__init__(strategy_id)
        self.body = body
        self.delay = delay
        self.error = error
        self.status = status
        self.final_url = final_url
        self.calls = 0
        self.cancelled = False
        self.timeouts: List[float] = []

    async def fetch(self, url: str, timeout: float) -> FetchResult:
        self.calls += 1
        self.timeouts.append(timeout)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise AcquisitionError(self.error, url, "scripted failure")
        return FetchResult(
            body=self.body,
            final_url=self.final_url or url,
            status=self.status,
        )


@pytest.fixture
def page():
    return product_page


@pytest.fixture
def fake_strategy():
    return FakeStrategy
