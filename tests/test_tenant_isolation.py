"""Tenant isolation across the storage partitions."""

from decimal import Decimal

import pytest

from conftest import make_product, make_promotion
from storefront.exceptions import DuplicateSkuError
from storefront.tenant_context import get_current_tenant, tenant_scope


class TestTenantIsolation:
    def test_same_sku_in_two_tenants(self, services):
        with tenant_scope("tenant1"):
            first = make_product(services, sku="SKU-X", name="Tenant 1 widget")
        with tenant_scope("tenant2"):
            second = make_product(services, sku="SKU-X", name="Tenant 2 widget")

        assert first.id == 1
        assert second.id == 1

        with tenant_scope("tenant1"):
            assert services.catalog.get_product_by_sku("SKU-X").name == "Tenant 1 widget"
        with tenant_scope("tenant2"):
            assert services.catalog.get_product_by_sku("SKU-X").name == "Tenant 2 widget"

    def test_data_is_invisible_to_other_tenants(self, services):
        with tenant_scope("tenant1"):
            make_product(services, sku="SKU-ONLY-T1")
            make_promotion(services)

        assert services.catalog.get_product_by_sku("SKU-ONLY-T1") is None
        assert services.catalog.get_all_active_products() == []
        with tenant_scope("tenant2"):
            assert services.promotions.get_promotion_by_code("SAVE10") is None

    def test_sku_is_unique_within_a_tenant(self, services):
        with tenant_scope("tenant1"):
            make_product(services, sku="SKU-X")
            with pytest.raises(DuplicateSkuError):
                make_product(services, sku="SKU-X")

    def test_unknown_tenant_shares_default_partition(self, services):
        make_product(services, sku="SKU-DEFAULT")
        with tenant_scope("ghost"):
            assert services.catalog.get_product_by_sku("SKU-DEFAULT") is not None

    def test_carts_are_partitioned(self, services):
        with tenant_scope("tenant1"):
            product = make_product(services, base_price=Decimal("10.00"))
            services.carts.add_item("shared-session", product.id, 1)
        with tenant_scope("tenant2"):
            assert services.carts.get_cart_by_session("shared-session").items == []

    def test_failed_operation_does_not_leak_tenant(self, services):
        with pytest.raises(DuplicateSkuError):
            with tenant_scope("tenant1"):
                make_product(services, sku="SKU-X")
                make_product(services, sku="SKU-X")
        assert get_current_tenant() is None
        assert services.catalog.get_product_by_sku("SKU-X") is None
