"""
Catalogue management for the current tenant.

Deactivation is the preferred way to retire a product: carts and price
rules keep referring to it. delete_product removes it outright.
"""
import logging
from typing import List, Optional

from storefront.clock import Clock, SystemClock
from storefront.exceptions import DuplicateSkuError, ProductNotFoundError
from storefront.models import Product, ProductPage, ProductPatch
from storefront.repositories import ProductRepository
from storefront.tenant_context import get_current_tenant

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for product operations"""

    def __init__(self, products: ProductRepository, clock: Optional[Clock] = None):
        self.products = products
        self.clock = clock or SystemClock()

    def get_all_active_products(self) -> List[Product]:
        logger.debug(f"Getting all active products for tenant: {get_current_tenant()}")
        return self.products.find_active()

    def get_active_products(self, page: int = 0, size: int = 20) -> ProductPage:
        logger.debug(f"Getting active products page for tenant: {get_current_tenant()}")
        return self._paginate(self.products.find_active(), page, size)

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        logger.debug(f"Getting product by ID {product_id} for tenant: {get_current_tenant()}")
        return self.products.find_by_id(product_id)

    def get_product(self, product_id: int) -> Product:
        product = self.get_product_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        logger.debug(f"Getting product by SKU {sku} for tenant: {get_current_tenant()}")
        return self.products.find_by_sku(sku)

    def get_products_by_category(self, category: str) -> List[Product]:
        logger.debug(f"Getting products by category {category} for tenant: {get_current_tenant()}")
        return self.products.find_by_category(category)

    def get_products_by_brand(self, brand: str) -> List[Product]:
        logger.debug(f"Getting products by brand {brand} for tenant: {get_current_tenant()}")
        return self.products.find_by_brand(brand)

    def search_products(self, term: str, page: int = 0, size: int = 20) -> ProductPage:
        logger.debug(f"Searching products with term '{term}' for tenant: {get_current_tenant()}")
        return self._paginate(self.products.search(term), page, size)

    def get_in_stock_products(self) -> List[Product]:
        logger.debug(f"Getting in-stock products for tenant: {get_current_tenant()}")
        return self.products.find_in_stock()

    def create_product(self, product: Product) -> Product:
        logger.info(f"Creating new product '{product.name}' for tenant: {get_current_tenant()}")
        if self.products.find_by_sku(product.sku) is not None:
            raise DuplicateSkuError(product.sku)
        now = self.clock.now()
        return self.products.save(
            product.model_copy(update={"id": None, "created_at": now, "updated_at": now})
        )

    def update_product(self, product_id: int, patch: ProductPatch) -> Product:
        logger.info(f"Updating product {product_id} for tenant: {get_current_tenant()}")
        product = patch.apply_to(self.get_product(product_id))
        return self.products.save(product.model_copy(update={"updated_at": self.clock.now()}))

    def delete_product(self, product_id: int) -> None:
        logger.info(f"Deleting product {product_id} for tenant: {get_current_tenant()}")
        if not self.products.delete_by_id(product_id):
            raise ProductNotFoundError(product_id)

    def deactivate_product(self, product_id: int) -> Product:
        logger.info(f"Deactivating product {product_id} for tenant: {get_current_tenant()}")
        return self.update_product(product_id, ProductPatch(active=False))

    @staticmethod
    def _paginate(products: List[Product], page: int, size: int) -> ProductPage:
        start = page * size
        return ProductPage(
            items=products[start:start + size],
            page=page,
            size=size,
            total=len(products)
        )
