"""
Custom exceptions for the storefront core.

Every error belongs to one family: NotFoundError, InvalidArgumentError,
BusinessRuleViolation or StorageConnectionError. The HTTP layer maps
families, not individual classes, to status codes.
"""
from typing import Optional


class StorefrontException(Exception):
    """Base exception for storefront operations"""
    pass


class NotFoundError(StorefrontException):
    """Raised when a referenced entity does not exist"""
    pass


class InvalidArgumentError(StorefrontException):
    """Raised when an argument is outside what the operation accepts"""
    pass


class BusinessRuleViolation(StorefrontException):
    """Raised when an operation would break a business rule"""
    pass


class StorageConnectionError(StorefrontException):
    """Raised when the Redis partition cannot be reached"""
    pass


class ProductNotFoundError(NotFoundError):
    """Raised when a product does not exist in the current tenant"""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class PriceNotFoundError(NotFoundError):
    def __init__(self, price_id: int):
        self.price_id = price_id
        super().__init__(f"Price not found with id: {price_id}")


class PromotionNotFoundError(NotFoundError):
    def __init__(self, promotion_id):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion not found: {promotion_id}")


class CartItemNotFoundError(NotFoundError):
    """Raised when a product has no line in the cart"""
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Item not found in cart: {product_id}")


class ValidationError(InvalidArgumentError):
    """Raised when validation fails"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidTenantError(InvalidArgumentError):
    def __init__(self, tenant_id: Optional[str]):
        self.tenant_id = tenant_id
        super().__init__(f"Invalid tenant: {tenant_id}")


class InvalidPromotionCodeError(InvalidArgumentError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid promotion code: {code}")


class ProductUnavailableError(BusinessRuleViolation):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product is not available: {product_id}")


class InsufficientStockError(BusinessRuleViolation):
    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class PromotionNotApplicableError(BusinessRuleViolation):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Promotion is not applicable to this cart: {code}")


class DuplicateSkuError(BusinessRuleViolation):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product with SKU already exists: {sku}")


class DuplicatePromotionCodeError(BusinessRuleViolation):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Promotion with code already exists: {code}")
