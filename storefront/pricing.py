"""
Effective price resolution and price rule management.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from storefront.clock import Clock, SystemClock
from storefront.exceptions import PriceNotFoundError, ProductNotFoundError
from storefront.models import PriceRule, PriceRulePatch, Product
from storefront.repositories import PriceRuleRepository, ProductRepository
from storefront.tenant_context import get_current_tenant

logger = logging.getLogger(__name__)


def is_candidate(rule: PriceRule, customer_group: Optional[str], quantity: int, now: datetime) -> bool:
    """Whether rule may price `quantity` units for `customer_group` at `now`.

    A request without a customer group accepts rules of every group.
    """
    if not rule.active:
        return False
    if rule.valid_from is not None and rule.valid_from > now:
        return False
    if rule.valid_to is not None and rule.valid_to < now:
        return False
    if customer_group is not None and rule.customer_group is not None \
            and rule.customer_group != customer_group:
        return False
    return rule.min_quantity <= quantity


def rank_price_rules(
    rules: List[PriceRule],
    customer_group: Optional[str],
    quantity: int,
    now: datetime
) -> List[PriceRule]:
    """Candidate rules, best first.

    Group-specific rules outrank generic ones, then the highest qualifying
    min_quantity wins; equal rules fall back to creation order.
    """
    candidates = [rule for rule in rules if is_candidate(rule, customer_group, quantity, now)]
    return sorted(
        candidates,
        key=lambda rule: (rule.customer_group is None, -rule.min_quantity, rule.id or 0)
    )


class PriceService:
    """Service for price lookups and price rule management"""

    def __init__(
        self,
        products: ProductRepository,
        prices: PriceRuleRepository,
        clock: Optional[Clock] = None
    ):
        self.products = products
        self.prices = prices
        self.clock = clock or SystemClock()

    def _get_product(self, product_id: int) -> Product:
        product = self.products.find_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_effective_price(
        self,
        product_id: int,
        customer_group: Optional[str] = None,
        quantity: int = 1
    ) -> Decimal:
        """
        Unit price for a product given customer group and quantity.

        Returns the price of the best-ranked applicable rule, or the
        product's base price when no rule applies.

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        logger.debug(
            f"Getting effective price for product {product_id} for tenant: {get_current_tenant()}"
        )
        product = self._get_product(product_id)
        ranked = rank_price_rules(
            self.prices.find_by_product(product.id),
            customer_group,
            quantity,
            self.clock.now()
        )
        if ranked:
            return ranked[0].price
        return product.base_price

    def get_product_prices(self, product_id: int) -> List[PriceRule]:
        logger.debug(f"Getting all prices for product {product_id} for tenant: {get_current_tenant()}")
        product = self._get_product(product_id)
        return self.prices.find_by_product(product.id)

    def get_prices_by_type(self, price_type: str) -> List[PriceRule]:
        logger.debug(f"Getting prices by type {price_type} for tenant: {get_current_tenant()}")
        return self.prices.find_by_type(price_type)

    def get_price(self, price_id: int) -> PriceRule:
        rule = self.prices.find_by_id(price_id)
        if rule is None:
            raise PriceNotFoundError(price_id)
        return rule

    def create_price(self, rule: PriceRule) -> PriceRule:
        logger.info(f"Creating new price for product {rule.product_id} for tenant: {get_current_tenant()}")
        self._get_product(rule.product_id)
        now = self.clock.now()
        return self.prices.save(rule.model_copy(update={"id": None, "created_at": now, "updated_at": now}))

    def update_price(self, price_id: int, patch: PriceRulePatch) -> PriceRule:
        logger.info(f"Updating price {price_id} for tenant: {get_current_tenant()}")
        rule = patch.apply_to(self.get_price(price_id))
        return self.prices.save(rule.model_copy(update={"updated_at": self.clock.now()}))

    def delete_price(self, price_id: int) -> None:
        logger.info(f"Deleting price {price_id} for tenant: {get_current_tenant()}")
        if not self.prices.delete_by_id(price_id):
            raise PriceNotFoundError(price_id)

    def deactivate_price(self, price_id: int) -> PriceRule:
        logger.info(f"Deactivating price {price_id} for tenant: {get_current_tenant()}")
        return self.update_price(price_id, PriceRulePatch(active=False))
