"""
Pydantic models for catalogue, pricing, promotion and cart data, plus the
request/response models used by the API.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Quantize an amount to cents"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    # Placeholder: treated as a fixed amount, no buy/get quantity logic
    BUY_X_GET_Y = "BUY_X_GET_Y"


class _Timestamped(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "valid_from", "valid_to", mode="after", check_fields=False)
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class Product(_Timestamped):
    """Catalogue product, unique by SKU within a tenant"""
    id: Optional[int] = Field(None, description="Product identifier, allocated per tenant")
    sku: str = Field(..., min_length=1, description="Stock keeping unit")
    name: str = Field(..., min_length=1, description="Display name")
    description: Optional[str] = Field(None, description="Long description")
    base_price: Decimal = Field(..., ge=0, description="Price when no price rule applies")
    stock_quantity: int = Field(0, ge=0, description="Units in stock")
    category: Optional[str] = Field(None, description="Product category")
    brand: Optional[str] = Field(None, description="Product brand")
    active: bool = Field(True, description="Inactive products cannot be added to carts")
    image_urls: List[str] = Field(default_factory=list, description="Image references")


class PriceRule(_Timestamped):
    """Conditional override of a product's base price"""
    id: Optional[int] = Field(None, description="Price rule identifier")
    product_id: int = Field(..., description="Product the rule prices")
    price: Decimal = Field(..., ge=0, description="Unit price when the rule applies")
    price_type: str = Field("REGULAR", description="Free-form classification, e.g. REGULAR, SPECIAL")
    customer_group: Optional[str] = Field(None, description="Customer group scope, None for all groups")
    min_quantity: int = Field(1, ge=1, description="Minimum quantity for the rule to apply")
    valid_from: Optional[datetime] = Field(None, description="Start of validity window")
    valid_to: Optional[datetime] = Field(None, description="End of validity window")
    active: bool = Field(True, description="Inactive rules are never effective")


class Promotion(_Timestamped):
    """Code-activated cart discount"""
    id: Optional[int] = Field(None, description="Promotion identifier")
    name: str = Field(..., min_length=1, description="Display name")
    description: Optional[str] = Field(None, description="Long description")
    code: str = Field(..., min_length=1, description="Code entered by the customer")
    discount_type: DiscountType = Field(..., description="How discount_value is interpreted")
    discount_value: Decimal = Field(..., ge=0, description="Percentage or amount")
    min_order_amount: Optional[Decimal] = Field(None, ge=0, description="Minimum order amount")
    max_discount_amount: Optional[Decimal] = Field(None, ge=0, description="Discount ceiling")
    usage_limit: Optional[int] = Field(None, ge=0, description="Maximum number of redemptions")
    usage_count: int = Field(0, ge=0, description="Redemptions so far")
    valid_from: datetime = Field(..., description="Start of validity window")
    valid_to: datetime = Field(..., description="End of validity window")
    applicable_categories: List[str] = Field(default_factory=list, description="Empty means all")
    applicable_products: List[int] = Field(default_factory=list, description="Empty means all")
    active: bool = Field(True, description="Inactive promotions yield no discount")


class CartItem(BaseModel):
    """Cart line; unit_price is a snapshot taken on add/update"""
    product_id: int = Field(..., description="Product identifier")
    product_name: Optional[str] = Field(None, description="Product name at time of add")
    quantity: int = Field(..., ge=1, description="Item quantity")
    unit_price: Decimal = Field(..., description="Effective price at time of add/update")
    total_price: Decimal = Field(..., description="unit_price * quantity")


class Cart(_Timestamped):
    """Shopping cart keyed by session or user"""
    id: Optional[int] = Field(None, description="Cart identifier")
    session_id: Optional[str] = Field(None, description="Guest session identifier")
    user_id: Optional[str] = Field(None, description="User identifier")
    items: List[CartItem] = Field(default_factory=list, description="Lines in insertion order")
    applied_promotion_id: Optional[int] = Field(None, description="Applied promotion")
    subtotal: Decimal = Field(Decimal("0.00"), description="Sum of line totals")
    discount_amount: Decimal = Field(Decimal("0.00"), description="Discount from the applied promotion")
    total_amount: Decimal = Field(Decimal("0.00"), description="subtotal - discount_amount")

    def find_item(self, product_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


class _Patch(BaseModel):
    """Partial update: only fields that are not None overwrite the target"""

    def changes(self) -> dict:
        return {
            name: getattr(self, name)
            for name in type(self).model_fields
            if getattr(self, name) is not None
        }

    def apply_to(self, entity: Any) -> Any:
        return entity.model_copy(update=self.changes())


class ProductPatch(_Patch):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    brand: Optional[str] = None
    image_urls: Optional[List[str]] = None
    active: Optional[bool] = None


class PriceRulePatch(_Patch):
    price: Optional[Decimal] = Field(None, ge=0)
    price_type: Optional[str] = None
    customer_group: Optional[str] = None
    min_quantity: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    active: Optional[bool] = None

    @field_validator("valid_from", "valid_to", mode="after")
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class PromotionPatch(_Patch):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    code: Optional[str] = Field(None, min_length=1)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    applicable_categories: Optional[List[str]] = None
    applicable_products: Optional[List[int]] = None
    active: Optional[bool] = None

    @field_validator("valid_from", "valid_to", mode="after")
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class CartItemRequest(BaseModel):
    """Request model for adding/updating cart items"""
    product_id: int = Field(..., description="Product identifier")
    quantity: int = Field(..., description="Item quantity; on update, <= 0 removes the line")
    customer_group: Optional[str] = Field(None, description="Customer group used for pricing")


class ProductPage(BaseModel):
    """One page of products"""
    items: List[Product] = Field(default_factory=list)
    page: int = Field(0, description="Zero-based page number")
    size: int = Field(20, description="Page size")
    total: int = Field(0, description="Total number of matching products")


class DiscountResponse(BaseModel):
    """Response model for discount calculation"""
    promotion_id: int
    code: str
    order_amount: Decimal
    discount: Decimal
