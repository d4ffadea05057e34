from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from basket_client.api_client import ShopApiClient
from basket_server.catalog import CatalogStore
from basket_server.main import create_app
from basket_server.models import Product, Rating
from basket_server.service import ShopService


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(
            id="1",
            title="Foldsack Backpack",
            price=Decimal("109.95"),
            category="bags",
            rating=Rating(rate=Decimal("3.9"), count=120),
        ),
        Product(id="2", title="Slim Fit T-Shirt", price=Decimal("22.30"), category="clothing"),
        Product(id="3", title="Rain Jacket", price=Decimal("39.99"), category="clothing"),
        Product(id="4", title="Gift Card", price=Decimal("25")),
    ]


@pytest.fixture
def catalog(products) -> CatalogStore:
    return CatalogStore(products)


@pytest.fixture
def service(catalog) -> ShopService:
    return ShopService(catalog)


@pytest.fixture
def app(service):
    return create_app(service)


@pytest.fixture
async def api(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield ShopApiClient(url="http://test/graphql", http_client=http)
