"""
Promotion eligibility, discount calculation and promotion management.

Usage accounting is deliberately not atomic with discount calculation:
calculate_discount reads usage_count, and increment_usage is a separate
read-modify-write issued when a redemption is actually consumed. Concurrent
redemptions can therefore both pass the usage-limit check before either
increments the count.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from storefront.clock import Clock, SystemClock
from storefront.exceptions import DuplicatePromotionCodeError, PromotionNotFoundError
from storefront.models import DiscountType, Promotion, PromotionPatch, to_money
from storefront.repositories import PromotionRepository
from storefront.tenant_context import get_current_tenant

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def is_redeemable(promotion: Promotion, now: datetime) -> bool:
    """Active, inside its validity window, and under its usage limit"""
    if not promotion.active:
        return False
    if now < promotion.valid_from or now > promotion.valid_to:
        return False
    if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
        return False
    return True


def raw_discount(promotion: Promotion, order_amount: Decimal) -> Decimal:
    """Discount before the ceiling is applied"""
    discount_type = promotion.discount_type
    if discount_type is DiscountType.PERCENTAGE:
        return order_amount * promotion.discount_value / HUNDRED
    elif discount_type is DiscountType.FIXED_AMOUNT:
        return promotion.discount_value
    elif discount_type is DiscountType.BUY_X_GET_Y:
        return promotion.discount_value
    raise ValueError(f"Unsupported discount type: {discount_type}")


class PromotionService:
    """Service for promotion lookups, discounts and usage"""

    def __init__(self, promotions: PromotionRepository, clock: Optional[Clock] = None):
        self.promotions = promotions
        self.clock = clock or SystemClock()

    def calculate_discount(self, promotion: Optional[Promotion], order_amount: Decimal) -> Decimal:
        """
        Discount a promotion grants on an order amount.

        Returns zero, never an error, when the promotion is missing or
        inactive, outside its validity window, below its minimum order
        amount, or at its usage limit. A fixed discount is not limited by
        the order amount, only by max_discount_amount.
        """
        if promotion is None or not is_redeemable(promotion, self.clock.now()):
            return ZERO

        if promotion.min_order_amount is not None and order_amount < promotion.min_order_amount:
            return ZERO

        discount = raw_discount(promotion, order_amount)

        if promotion.max_discount_amount is not None and discount > promotion.max_discount_amount:
            discount = promotion.max_discount_amount

        return to_money(discount)

    def increment_usage(self, promotion_id: int) -> Promotion:
        logger.debug(f"Incrementing usage for promotion {promotion_id} for tenant: {get_current_tenant()}")
        promotion = self.get_promotion(promotion_id)
        return self.promotions.save(
            promotion.model_copy(update={
                "usage_count": promotion.usage_count + 1,
                "updated_at": self.clock.now()
            })
        )

    def get_all_promotions(self) -> List[Promotion]:
        logger.debug(f"Getting all promotions for tenant: {get_current_tenant()}")
        return self.promotions.find_all()

    def get_active_promotions(self) -> List[Promotion]:
        logger.debug(f"Getting active promotions for tenant: {get_current_tenant()}")
        now = self.clock.now()
        return self.promotions.find_where(lambda p: is_redeemable(p, now))

    def get_promotions_for_category(self, category: str) -> List[Promotion]:
        logger.debug(f"Getting promotions for category {category} for tenant: {get_current_tenant()}")
        now = self.clock.now()
        return self.promotions.find_where(
            lambda p: is_redeemable(p, now)
            and (not p.applicable_categories or category in p.applicable_categories)
        )

    def get_promotion_by_id(self, promotion_id: int) -> Optional[Promotion]:
        logger.debug(f"Getting promotion by ID {promotion_id} for tenant: {get_current_tenant()}")
        return self.promotions.find_by_id(promotion_id)

    def get_promotion(self, promotion_id: int) -> Promotion:
        promotion = self.get_promotion_by_id(promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        return promotion

    def get_promotion_by_code(self, code: str) -> Optional[Promotion]:
        """Active promotion with this code, if any"""
        logger.debug(f"Getting promotion by code {code} for tenant: {get_current_tenant()}")
        promotion = self.promotions.find_by_code(code)
        if promotion is None or not promotion.active:
            return None
        return promotion

    def create_promotion(self, promotion: Promotion) -> Promotion:
        logger.info(f"Creating new promotion '{promotion.name}' for tenant: {get_current_tenant()}")
        if self.promotions.find_by_code(promotion.code) is not None:
            raise DuplicatePromotionCodeError(promotion.code)
        now = self.clock.now()
        return self.promotions.save(
            promotion.model_copy(update={"id": None, "created_at": now, "updated_at": now})
        )

    def update_promotion(self, promotion_id: int, patch: PromotionPatch) -> Promotion:
        logger.info(f"Updating promotion {promotion_id} for tenant: {get_current_tenant()}")
        existing = self.get_promotion(promotion_id)
        if patch.code is not None and patch.code != existing.code:
            if self.promotions.find_by_code(patch.code) is not None:
                raise DuplicatePromotionCodeError(patch.code)
        promotion = patch.apply_to(existing)
        return self.promotions.save(promotion.model_copy(update={"updated_at": self.clock.now()}))

    def delete_promotion(self, promotion_id: int) -> None:
        logger.info(f"Deleting promotion {promotion_id} for tenant: {get_current_tenant()}")
        if not self.promotions.delete_by_id(promotion_id):
            raise PromotionNotFoundError(promotion_id)

    def deactivate_promotion(self, promotion_id: int) -> Promotion:
        logger.info(f"Deactivating promotion {promotion_id} for tenant: {get_current_tenant()}")
        return self.update_promotion(promotion_id, PromotionPatch(active=False))
