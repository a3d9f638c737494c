"""Tests for cart mutations and cart totals."""

from decimal import Decimal

import pytest

from conftest import make_price, make_product, make_promotion
from storefront.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidPromotionCodeError,
    ProductNotFoundError,
    ProductUnavailableError,
    PromotionNotApplicableError,
    ValidationError,
)
from storefront.middleware import hash_identifier
from storefront.tenant_context import tenant_scope

SESSION = "session-123"


@pytest.fixture()
def carts(services):
    return services.carts


@pytest.fixture()
def laptop(services):
    return make_product(services, base_price=Decimal("100.00"), stock_quantity=10)


def assert_totals(cart, subtotal, discount, total):
    assert cart.subtotal == Decimal(subtotal)
    assert cart.discount_amount == Decimal(discount)
    assert cart.total_amount == Decimal(total)


class TestGetCart:
    def test_created_on_first_access(self, carts):
        cart = carts.get_cart_by_session(SESSION)
        assert cart.id is not None
        assert cart.session_id == SESSION
        assert cart.items == []
        assert_totals(cart, "0", "0", "0")

    def test_same_cart_on_next_access(self, carts):
        first = carts.get_cart_by_session(SESSION)
        assert carts.get_cart_by_session(SESSION).id == first.id

    def test_blank_session(self, carts):
        with pytest.raises(ValidationError):
            carts.get_cart_by_session("  ")

    def test_user_cart(self, carts):
        cart = carts.get_cart_by_user("user-1")
        assert cart.user_id == "user-1"
        assert carts.get_cart_by_user("user-1").id == cart.id
        assert carts.get_cart_by_session(SESSION).id != cart.id


class TestAddItem:
    def test_adds_line_at_effective_price(self, services, carts, laptop):
        make_price(services, laptop.id, price=Decimal("90.00"))
        cart = carts.add_item(SESSION, laptop.id, 2)
        assert len(cart.items) == 1
        item = cart.items[0]
        assert item.product_name == laptop.name
        assert item.unit_price == Decimal("90.00")
        assert item.total_price == Decimal("180.00")
        assert_totals(cart, "180.00", "0", "180.00")

    def test_merge_reprices_at_cumulative_quantity(self, services, carts, laptop):
        make_price(services, laptop.id, min_quantity=5, price=Decimal("80.00"))
        carts.add_item(SESSION, laptop.id, 2)
        cart = carts.add_item(SESSION, laptop.id, 3)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.items[0].unit_price == Decimal("80.00")
        assert_totals(cart, "400.00", "0", "400.00")

    def test_customer_group_pricing(self, services, carts, laptop):
        make_price(services, laptop.id, customer_group="VIP", price=Decimal("75.00"))
        cart = carts.add_item(SESSION, laptop.id, 1, customer_group="VIP")
        assert cart.items[0].unit_price == Decimal("75.00")

    def test_lines_keep_insertion_order(self, services, carts, laptop):
        mouse = make_product(services, sku="SKU-MOUSE-001", name="Mouse", base_price=Decimal("20.00"))
        carts.add_item(SESSION, mouse.id, 1)
        cart = carts.add_item(SESSION, laptop.id, 1)
        assert [item.product_id for item in cart.items] == [mouse.id, laptop.id]
        assert_totals(cart, "120.00", "0", "120.00")

    def test_zero_quantity(self, carts, laptop):
        with pytest.raises(ValidationError):
            carts.add_item(SESSION, laptop.id, 0)

    def test_missing_product(self, carts):
        with pytest.raises(ProductNotFoundError):
            carts.add_item(SESSION, 999, 1)

    def test_inactive_product(self, services, carts, laptop):
        services.catalog.deactivate_product(laptop.id)
        with pytest.raises(ProductUnavailableError):
            carts.add_item(SESSION, laptop.id, 1)

    def test_insufficient_stock(self, carts, laptop):
        with pytest.raises(InsufficientStockError):
            carts.add_item(SESSION, laptop.id, 11)

    def test_merge_beyond_stock_leaves_cart_unchanged(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 6)
        with pytest.raises(InsufficientStockError) as excinfo:
            carts.add_item(SESSION, laptop.id, 5)
        assert excinfo.value.requested == 11
        assert excinfo.value.available == 10
        cart = carts.get_cart_by_session(SESSION)
        assert cart.items[0].quantity == 6
        assert_totals(cart, "600.00", "0", "600.00")


class TestUpdateAndRemove:
    def test_update_quantity(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 1)
        cart = carts.update_item(SESSION, laptop.id, 3)
        assert cart.items[0].quantity == 3
        assert_totals(cart, "300.00", "0", "300.00")

    def test_update_to_zero_removes_line(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 1)
        cart = carts.update_item(SESSION, laptop.id, 0)
        assert cart.items == []
        assert_totals(cart, "0", "0", "0")

    def test_update_missing_line(self, carts, laptop):
        with pytest.raises(CartItemNotFoundError):
            carts.update_item(SESSION, laptop.id, 2)

    def test_update_beyond_stock(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 1)
        with pytest.raises(InsufficientStockError):
            carts.update_item(SESSION, laptop.id, 20)
        assert carts.get_cart_by_session(SESSION).items[0].quantity == 1

    def test_remove_item(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 2)
        cart = carts.remove_item(SESSION, laptop.id)
        assert cart.items == []
        assert_totals(cart, "0", "0", "0")

    def test_remove_absent_item_is_noop(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 2)
        cart = carts.remove_item(SESSION, 999)
        assert len(cart.items) == 1
        assert_totals(cart, "200.00", "0", "200.00")

    def test_clear_cart(self, services, carts, laptop):
        make_promotion(services)
        carts.add_item(SESSION, laptop.id, 2)
        carts.apply_promotion(SESSION, "SAVE10")
        cart = carts.clear_cart(SESSION)
        assert cart.items == []
        assert cart.applied_promotion_id is None
        assert_totals(cart, "0", "0", "0")


class TestPromotions:
    def test_full_flow(self, services, carts):
        product = make_product(services, base_price=Decimal("50.00"))
        make_promotion(services)

        cart = carts.add_item(SESSION, product.id, 2)
        assert_totals(cart, "100.00", "0", "100.00")

        cart = carts.apply_promotion(SESSION, "SAVE10")
        assert_totals(cart, "100.00", "10.00", "90.00")

        cart = carts.remove_item(SESSION, product.id)
        assert_totals(cart, "0", "0", "0")

    def test_unknown_code(self, carts, laptop):
        carts.add_item(SESSION, laptop.id, 1)
        with pytest.raises(InvalidPromotionCodeError):
            carts.apply_promotion(SESSION, "NOPE")

    def test_inactive_code_is_unknown(self, services, carts, laptop):
        make_promotion(services, active=False)
        carts.add_item(SESSION, laptop.id, 1)
        with pytest.raises(InvalidPromotionCodeError):
            carts.apply_promotion(SESSION, "SAVE10")

    def test_not_applicable_to_empty_cart(self, services, carts):
        make_promotion(services)
        with pytest.raises(PromotionNotApplicableError):
            carts.apply_promotion(SESSION, "SAVE10")
        assert carts.get_cart_by_session(SESSION).applied_promotion_id is None

    def test_below_minimum_order(self, services, carts, laptop):
        make_promotion(services, min_order_amount=Decimal("500"))
        carts.add_item(SESSION, laptop.id, 1)
        with pytest.raises(PromotionNotApplicableError):
            carts.apply_promotion(SESSION, "SAVE10")

    def test_remove_promotion(self, services, carts, laptop):
        make_promotion(services)
        carts.add_item(SESSION, laptop.id, 1)
        carts.apply_promotion(SESSION, "SAVE10")
        cart = carts.remove_promotion(SESSION)
        assert cart.applied_promotion_id is None
        assert_totals(cart, "100.00", "0", "100.00")

    def test_discount_follows_item_changes(self, services, carts, laptop):
        promotion = make_promotion(services, min_order_amount=Decimal("150"))
        carts.add_item(SESSION, laptop.id, 2)
        cart = carts.apply_promotion(SESSION, "SAVE10")
        assert_totals(cart, "200.00", "20.00", "180.00")

        cart = carts.update_item(SESSION, laptop.id, 1)
        assert cart.applied_promotion_id == promotion.id
        assert_totals(cart, "100.00", "0", "100.00")

        cart = carts.update_item(SESSION, laptop.id, 3)
        assert_totals(cart, "300.00", "30.00", "270.00")

    def test_fixed_discount_can_make_total_negative(self, services, carts):
        product = make_product(services, base_price=Decimal("20.00"))
        make_promotion(services, code="FLAT30", discount_type="FIXED_AMOUNT", discount_value=Decimal("30"))
        carts.add_item(SESSION, product.id, 1)
        cart = carts.apply_promotion(SESSION, "FLAT30")
        assert_totals(cart, "20.00", "30.00", "-10.00")

    def test_recalculate_is_idempotent(self, services, carts, laptop):
        make_promotion(services)
        carts.add_item(SESSION, laptop.id, 3)
        cart = carts.apply_promotion(SESSION, "SAVE10")
        again = carts.recalculate(cart.model_copy(deep=True))
        assert (again.subtotal, again.discount_amount, again.total_amount) == (
            cart.subtotal, cart.discount_amount, cart.total_amount
        )


class TestCleanup:
    def test_deletes_only_stale_carts(self, carts, clock):
        carts.get_cart_by_session("old")
        clock.advance(days=8)
        carts.get_cart_by_session("fresh")

        assert carts.cleanup_abandoned_carts(7) == 1
        assert carts.carts.find_by_session_id("old") is None
        assert carts.carts.find_by_session_id("fresh") is not None

    def test_touching_a_cart_keeps_it(self, carts, clock, laptop):
        carts.get_cart_by_session(SESSION)
        clock.advance(days=6)
        carts.add_item(SESSION, laptop.id, 1)
        clock.advance(days=2)
        assert carts.cleanup_abandoned_carts(7) == 0

    def test_scoped_to_current_tenant(self, carts, clock):
        with tenant_scope("tenant1"):
            carts.get_cart_by_session(SESSION)
        with tenant_scope("tenant2"):
            carts.get_cart_by_session(SESSION)
        clock.advance(days=8)

        with tenant_scope("tenant1"):
            assert carts.cleanup_abandoned_carts(7) == 1
        with tenant_scope("tenant2"):
            assert carts.carts.find_by_session_id(SESSION) is not None

    def test_negative_age(self, carts):
        with pytest.raises(ValidationError):
            carts.cleanup_abandoned_carts(-1)


class TestLogging:
    def test_session_id_is_hashed(self, carts, laptop, caplog):
        with caplog.at_level("DEBUG", logger="storefront.cart_service"):
            carts.add_item(SESSION, laptop.id, 1)
        assert hash_identifier(SESSION) in caplog.text
        assert SESSION not in caplog.text
