from datetime import datetime, timedelta, timezone
from decimal import Decimal

import fakeredis
import pytest

from storefront.main import build_services
from storefront.models import DiscountType, PriceRule, Product, Promotion
from storefront.redis_client import RedisClient
from storefront.routing import DataRouter
from storefront.tenant_resolver import TenantRegistry

TENANTS = ["default", "tenant1", "tenant2"]
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


def fake_partition(tenant_id: str) -> RedisClient:
    """A RedisClient backed by its own in-process Redis server"""
    server = fakeredis.FakeServer()
    return RedisClient(tenant_id, client=fakeredis.FakeRedis(server=server, decode_responses=True))


@pytest.fixture()
def partitions():
    return {tenant: fake_partition(tenant) for tenant in TENANTS}


@pytest.fixture()
def router(partitions):
    return DataRouter(partitions, default_tenant="default")


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def registry():
    return TenantRegistry(TENANTS)


@pytest.fixture()
def services(router, clock, registry):
    return build_services(router, clock, registry)


def make_product(services, **overrides) -> Product:
    defaults = {
        "sku": "SKU-LAPTOP-001",
        "name": "Sample Laptop",
        "description": "High-performance laptop for professionals",
        "base_price": Decimal("100.00"),
        "stock_quantity": 50,
        "category": "Electronics",
        "brand": "TechBrand",
    }
    defaults.update(overrides)
    return services.catalog.create_product(Product(**defaults))


def make_price(services, product_id: int, **overrides) -> PriceRule:
    defaults = {"product_id": product_id, "price": Decimal("90.00")}
    defaults.update(overrides)
    return services.prices.create_price(PriceRule(**defaults))


def make_promotion(services=None, **overrides) -> Promotion:
    """Build a promotion; persist it when services are given"""
    defaults = {
        "name": "10% Off",
        "code": "SAVE10",
        "discount_type": DiscountType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "valid_from": NOW - timedelta(days=1),
        "valid_to": NOW + timedelta(days=30),
    }
    defaults.update(overrides)
    promotion = Promotion(**defaults)
    if services is None:
        return promotion
    return services.promotions.create_promotion(promotion)
