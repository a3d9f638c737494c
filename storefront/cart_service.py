"""
Cart service: cart mutations and the subtotal/discount/total invariant.

Every mutation loads the cart, applies the change in memory, recalculates
and saves. Checks run before the save, so a failed operation leaves the
stored cart untouched. Concurrent mutations of the same cart are not
serialized here: the last save wins.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from storefront.clock import Clock, SystemClock
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
from storefront.models import Cart, CartItem, Product, to_money
from storefront.pricing import PriceService
from storefront.promotions import PromotionService
from storefront.repositories import CartRepository, ProductRepository
from storefront.tenant_context import get_current_tenant

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class CartService:
    """Service for cart operations"""

    def __init__(
        self,
        carts: CartRepository,
        products: ProductRepository,
        price_service: PriceService,
        promotion_service: PromotionService,
        clock: Optional[Clock] = None
    ):
        self.carts = carts
        self.products = products
        self.price_service = price_service
        self.promotion_service = promotion_service
        self.clock = clock or SystemClock()

    def _save(self, cart: Cart) -> Cart:
        now = self.clock.now()
        if cart.created_at is None:
            cart.created_at = now
        cart.updated_at = now
        return self.carts.save(cart)

    def get_cart_by_session(self, session_id: str) -> Cart:
        """Get the session's cart, creating an empty one on first access"""
        logger.debug(
            f"Getting cart for session {hash_identifier(session_id)} for tenant: {get_current_tenant()}"
        )
        if not session_id or not session_id.strip():
            raise ValidationError("Session ID is required")
        cart = self.carts.find_by_session_id(session_id)
        if cart is None:
            cart = self._save(Cart(session_id=session_id))
        return cart

    def get_cart_by_user(self, user_id: str) -> Cart:
        """Get the user's cart, creating an empty one on first access"""
        logger.debug(f"Getting cart for user {hash_identifier(user_id)} for tenant: {get_current_tenant()}")
        if not user_id or not user_id.strip():
            raise ValidationError("User ID is required")
        cart = self.carts.find_by_user_id(user_id)
        if cart is None:
            cart = self._save(Cart(user_id=user_id))
        return cart

    def _get_product(self, product_id: int) -> Product:
        product = self.products.find_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def _check_stock(self, product: Product, quantity: int):
        if product.stock_quantity < quantity:
            raise InsufficientStockError(product.id, quantity, product.stock_quantity)

    def _priced_item(
        self,
        product: Product,
        quantity: int,
        customer_group: Optional[str]
    ) -> CartItem:
        unit_price = self.price_service.get_effective_price(product.id, customer_group, quantity)
        return CartItem(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=to_money(unit_price * quantity)
        )

    def add_item(
        self,
        session_id: str,
        product_id: int,
        quantity: int,
        customer_group: Optional[str] = None
    ) -> Cart:
        """
        Add a product to the session's cart.

        An existing line for the product is merged: its quantity becomes the
        sum and its unit price is re-resolved at that cumulative quantity.

        Raises:
            ValidationError: If quantity is not positive
            ProductNotFoundError: If the product does not exist
            ProductUnavailableError: If the product is inactive
            InsufficientStockError: If stock does not cover the (cumulative) quantity
        """
        logger.info(
            f"Adding item {product_id} (qty: {quantity}) to cart {hash_identifier(session_id)} "
            f"for tenant: {get_current_tenant()}"
        )
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self.get_cart_by_session(session_id)
        product = self._get_product(product_id)
        if not product.active:
            raise ProductUnavailableError(product_id)
        self._check_stock(product, quantity)

        existing = cart.find_item(product_id)
        if existing is not None:
            new_quantity = existing.quantity + quantity
            self._check_stock(product, new_quantity)
            position = cart.items.index(existing)
            cart.items[position] = self._priced_item(product, new_quantity, customer_group)
        else:
            cart.items.append(self._priced_item(product, quantity, customer_group))

        self.recalculate(cart)
        return self._save(cart)

    def update_item(
        self,
        session_id: str,
        product_id: int,
        quantity: int,
        customer_group: Optional[str] = None
    ) -> Cart:
        """
        Set the quantity of an existing line; quantity <= 0 removes it.

        Raises:
            CartItemNotFoundError: If the cart has no line for the product
            InsufficientStockError: If stock does not cover the quantity
        """
        logger.info(
            f"Updating cart item {product_id} to qty {quantity} in cart {hash_identifier(session_id)} "
            f"for tenant: {get_current_tenant()}"
        )
        cart = self.get_cart_by_session(session_id)
        existing = cart.find_item(product_id)
        if existing is None:
            raise CartItemNotFoundError(product_id)

        if quantity <= 0:
            cart.items.remove(existing)
        else:
            product = self._get_product(product_id)
            self._check_stock(product, quantity)
            position = cart.items.index(existing)
            cart.items[position] = self._priced_item(product, quantity, customer_group)

        self.recalculate(cart)
        return self._save(cart)

    def remove_item(self, session_id: str, product_id: int) -> Cart:
        """Remove a product's line; removing an absent line is a no-op"""
        logger.info(
            f"Removing item {product_id} from cart {hash_identifier(session_id)} "
            f"for tenant: {get_current_tenant()}"
        )
        cart = self.get_cart_by_session(session_id)
        cart.items = [item for item in cart.items if item.product_id != product_id]
        self.recalculate(cart)
        return self._save(cart)

    def apply_promotion(self, session_id: str, promotion_code: str) -> Cart:
        """
        Apply a promotion code to the session's cart.

        Raises:
            InvalidPromotionCodeError: If the code names no active promotion
            PromotionNotApplicableError: If the promotion yields no discount
        """
        logger.info(
            f"Applying promotion {promotion_code} to cart {hash_identifier(session_id)} "
            f"for tenant: {get_current_tenant()}"
        )
        cart = self.get_cart_by_session(session_id)
        promotion = self.promotion_service.get_promotion_by_code(promotion_code)
        if promotion is None:
            raise InvalidPromotionCodeError(promotion_code)

        discount = self.promotion_service.calculate_discount(promotion, cart.subtotal)
        if discount <= ZERO:
            raise PromotionNotApplicableError(promotion_code)

        cart.applied_promotion_id = promotion.id
        self.recalculate(cart)
        return self._save(cart)

    def remove_promotion(self, session_id: str) -> Cart:
        logger.info(
            f"Removing promotion from cart {hash_identifier(session_id)} for tenant: {get_current_tenant()}"
        )
        cart = self.get_cart_by_session(session_id)
        cart.applied_promotion_id = None
        self.recalculate(cart)
        return self._save(cart)

    def clear_cart(self, session_id: str) -> Cart:
        logger.info(f"Clearing cart {hash_identifier(session_id)} for tenant: {get_current_tenant()}")
        cart = self.get_cart_by_session(session_id)
        cart.items = []
        cart.applied_promotion_id = None
        self.recalculate(cart)
        return self._save(cart)

    def cleanup_abandoned_carts(self, days_old: int) -> int:
        """Delete carts in the current partition untouched for days_old days"""
        logger.info(f"Cleaning up carts older than {days_old} days for tenant: {get_current_tenant()}")
        if days_old < 0:
            raise ValidationError("days_old cannot be negative")
        cutoff = self.clock.now() - timedelta(days=days_old)
        deleted = self.carts.delete_updated_before(cutoff)
        logger.info(f"Deleted {deleted} abandoned carts for tenant: {get_current_tenant()}")
        return deleted

    def recalculate(self, cart: Cart) -> Cart:
        """Refresh subtotal, discount and total from the items and promotion.

        The discount is re-evaluated against the new subtotal, so it can
        shrink to zero without the promotion being removed.
        """
        subtotal = to_money(sum((item.total_price for item in cart.items), ZERO))
        discount = ZERO
        if cart.applied_promotion_id is not None:
            promotion = self.promotion_service.get_promotion_by_id(cart.applied_promotion_id)
            discount = self.promotion_service.calculate_discount(promotion, subtotal)

        cart.subtotal = subtotal
        cart.discount_amount = discount
        cart.total_amount = to_money(subtotal - discount)
        return cart
