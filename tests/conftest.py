"""Pytest configuration and fixtures for the storefront core service."""

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient

from src.models.product import Product
from src.services.promotions.catalog_store import (
    PromotionCatalogStore,
    get_catalog_store,
    get_redis_client,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "asyncio: marks tests as async tests")


@pytest.fixture()
def tshirt_payload():
    """Product with Cor x Tamanho where (Verde, M) does not exist."""
    return {
        "id": "prod-tshirt",
        "name": "Camiseta Basica",
        "slug": "camiseta-basica",
        "price_of": 100.0,
        "price_per": 80.0,
        "stock": 5,
        "images": [
            {"url": "camiseta.png"},
            {"url": "/files/camiseta-primary.png", "isPrimary": True},
        ],
        "variants": [
            {
                "id": "var-azul-p",
                "sku": "CAM-AZ-P",
                "stock": 3,
                "variantAttribute": [
                    {
                        "name": "Cor",
                        "value": "Azul",
                        "variantAttributeImage": [{"url": "https://cdn.example.com/azul.png"}],
                    },
                    {"name": "Tamanho", "value": "P"},
                ],
                "productVariantImage": [{"url": "https://cdn.example.com/azul-p.png"}],
            },
            {
                "id": "var-azul-m",
                "sku": "CAM-AZ-M",
                "price_per": 90.0,
                "stock": 0,
                "variantAttribute": [
                    {"name": "Cor", "value": "Azul"},
                    {"name": "Tamanho", "value": "M"},
                ],
            },
            {
                "id": "var-verde-p",
                "sku": "CAM-VD-P",
                "variantAttribute": [
                    {"name": "Cor", "value": "Verde"},
                    {"name": "Tamanho", "value": "P"},
                ],
            },
        ],
    }


@pytest.fixture()
def tshirt(tshirt_payload) -> Product:
    return Product.model_validate(tshirt_payload)


@pytest.fixture()
def scenario_cart_payload():
    """Three units worth R$300 shipped for R$20."""
    return {
        "items": [
            {
                "productId": "prod-tshirt",
                "variantId": "var-azul-p",
                "unitPrice": "100.00",
                "quantity": 2,
                "categoryIds": ["cat-roupas"],
                "brandId": "brand-acme",
            },
            {
                "productId": "prod-mug",
                "variantId": "var-mug",
                "unitPrice": "100.00",
                "quantity": 1,
                "categoryIds": ["cat-casa"],
                "brandId": "brand-home",
            },
        ],
        "shipping_cost": "20.00",
        "customer": {"customer_id": "cust-1", "first_purchase": True, "cep": "01310-100", "state": "SP"},
    }


@pytest_asyncio.fixture()
async def redis_client():
    """Provide a fake Redis client for each test."""
    from src.main import app

    client = fakeredis.FakeRedis(decode_responses=True)
    app.dependency_overrides[get_redis_client] = lambda: client
    app.dependency_overrides[get_catalog_store] = lambda: PromotionCatalogStore(client)
    try:
        yield client
    finally:
        await client.flushdb()
        await client.aclose()
        app.dependency_overrides.pop(get_redis_client, None)
        app.dependency_overrides.pop(get_catalog_store, None)


@pytest_asyncio.fixture()
async def client(redis_client):
    """Return an HTTPX async client pointing at the FastAPI app."""
    from src.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as test_client:
        yield test_client
