"""
FastAPI application for the multi-tenant storefront.

Every request is scoped to one tenant by TenantMiddleware; the services
below never see a tenant argument, they reach the tenant's partition through
the DataRouter.
"""
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.cart_service import CartService
from storefront.catalog import CatalogService
from storefront.clock import Clock, SystemClock
from storefront.config import Config
from storefront.exceptions import (
    BusinessRuleViolation,
    InvalidArgumentError,
    NotFoundError,
    ProductNotFoundError,
    PromotionNotFoundError,
    StorageConnectionError,
)
from storefront.middleware import MetricsMiddleware, TenantMiddleware
from storefront.models import (
    Cart,
    CartItemRequest,
    DiscountResponse,
    PriceRule,
    PriceRulePatch,
    Product,
    ProductPage,
    ProductPatch,
    Promotion,
    PromotionPatch,
)
from storefront.pricing import PriceService
from storefront.promotions import PromotionService
from storefront.repositories import (
    CartRepository,
    PriceRuleRepository,
    ProductRepository,
    PromotionRepository,
)
from storefront.routing import DataRouter, build_router
from storefront.tenant_context import get_current_tenant
from storefront.tenant_resolver import TenantRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    router: DataRouter
    registry: TenantRegistry
    catalog: CatalogService
    prices: PriceService
    promotions: PromotionService
    carts: CartService


def build_services(router: DataRouter, clock: Optional[Clock] = None, registry: Optional[TenantRegistry] = None) -> Services:
    clock = clock or SystemClock()
    products = ProductRepository(router)
    price_service = PriceService(products, PriceRuleRepository(router), clock)
    promotion_service = PromotionService(PromotionRepository(router), clock)
    return Services(
        router=router,
        registry=registry or TenantRegistry(),
        catalog=CatalogService(products, clock),
        prices=price_service,
        promotions=promotion_service,
        carts=CartService(CartRepository(router), products, price_service, promotion_service, clock)
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


api = APIRouter()


# Health check endpoint
@api.get("/health")
def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.
    Always returns HTTP 200 if the application is running and reports
    whether the current tenant's partition answers a ping.
    """
    partition = services.router.current_partition()
    ping_start = time.time()
    redis_ok = partition.ping()
    return {
        "status": "healthy",
        "service": "storefront-api",
        "tenant": get_current_tenant(),
        "redis": {
            "status": "healthy" if redis_ok else "unhealthy",
            "partition": partition.tenant_id,
            "latency_ms": round((time.time() - ping_start) * 1000, 2)
        },
        "timestamp": time.time()
    }


# Tenant endpoints
@api.get("/api/tenant")
def current_tenant(services: Services = Depends(get_services)):
    return {"tenant": get_current_tenant(), "partition": services.router.current_tenant_key()}


@api.get("/api/tenants")
def available_tenants(services: Services = Depends(get_services)):
    return {"tenants": services.registry.available_tenants()}


@api.post("/api/tenants/{tenant_id}/validate")
def validate_tenant(tenant_id: str, services: Services = Depends(get_services)):
    services.registry.validate_tenant(tenant_id)
    return {"tenant": tenant_id, "valid": True}


# Product endpoints
@api.get("/api/products", response_model=ProductPage)
def get_products(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
    services: Services = Depends(get_services)
):
    return services.catalog.get_active_products(page, size)


@api.get("/api/products/all", response_model=List[Product])
def get_all_products(services: Services = Depends(get_services)):
    return services.catalog.get_all_active_products()


@api.get("/api/products/search", response_model=ProductPage)
def search_products(
    q: str = Query(..., min_length=1),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
    services: Services = Depends(get_services)
):
    return services.catalog.search_products(q, page, size)


@api.get("/api/products/in-stock", response_model=List[Product])
def get_in_stock_products(services: Services = Depends(get_services)):
    return services.catalog.get_in_stock_products()


@api.get("/api/products/sku/{sku}", response_model=Product)
def get_product_by_sku(sku: str, services: Services = Depends(get_services)):
    product = services.catalog.get_product_by_sku(sku)
    if product is None:
        raise ProductNotFoundError(sku)
    return product


@api.get("/api/products/category/{category}", response_model=List[Product])
def get_products_by_category(category: str, services: Services = Depends(get_services)):
    return services.catalog.get_products_by_category(category)


@api.get("/api/products/brand/{brand}", response_model=List[Product])
def get_products_by_brand(brand: str, services: Services = Depends(get_services)):
    return services.catalog.get_products_by_brand(brand)


@api.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: int, services: Services = Depends(get_services)):
    return services.catalog.get_product(product_id)


@api.post("/api/products", response_model=Product, status_code=201)
def create_product(product: Product, services: Services = Depends(get_services)):
    return services.catalog.create_product(product)


@api.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: int, patch: ProductPatch, services: Services = Depends(get_services)):
    return services.catalog.update_product(product_id, patch)


@api.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: int, services: Services = Depends(get_services)):
    services.catalog.delete_product(product_id)


@api.patch("/api/products/{product_id}/deactivate", status_code=204)
def deactivate_product(product_id: int, services: Services = Depends(get_services)):
    services.catalog.deactivate_product(product_id)


# Price endpoints
@api.get("/api/prices/product/{product_id}/effective")
def get_effective_price(
    product_id: int,
    customer_group: Optional[str] = Query(None),
    quantity: int = Query(1, ge=1),
    services: Services = Depends(get_services)
):
    price = services.prices.get_effective_price(product_id, customer_group, quantity)
    return {
        "product_id": product_id,
        "customer_group": customer_group,
        "quantity": quantity,
        "effective_price": str(price)
    }


@api.get("/api/prices/product/{product_id}", response_model=List[PriceRule])
def get_product_prices(product_id: int, services: Services = Depends(get_services)):
    return services.prices.get_product_prices(product_id)


@api.get("/api/prices/type/{price_type}", response_model=List[PriceRule])
def get_prices_by_type(price_type: str, services: Services = Depends(get_services)):
    return services.prices.get_prices_by_type(price_type)


@api.post("/api/prices", response_model=PriceRule, status_code=201)
def create_price(rule: PriceRule, services: Services = Depends(get_services)):
    return services.prices.create_price(rule)


@api.put("/api/prices/{price_id}", response_model=PriceRule)
def update_price(price_id: int, patch: PriceRulePatch, services: Services = Depends(get_services)):
    return services.prices.update_price(price_id, patch)


@api.delete("/api/prices/{price_id}", status_code=204)
def delete_price(price_id: int, services: Services = Depends(get_services)):
    services.prices.delete_price(price_id)


@api.patch("/api/prices/{price_id}/deactivate", status_code=204)
def deactivate_price(price_id: int, services: Services = Depends(get_services)):
    services.prices.deactivate_price(price_id)


# Promotion endpoints
@api.get("/api/promotions", response_model=List[Promotion])
def get_all_promotions(services: Services = Depends(get_services)):
    return services.promotions.get_all_promotions()


@api.get("/api/promotions/active", response_model=List[Promotion])
def get_active_promotions(services: Services = Depends(get_services)):
    return services.promotions.get_active_promotions()


@api.get("/api/promotions/category/{category}", response_model=List[Promotion])
def get_promotions_for_category(category: str, services: Services = Depends(get_services)):
    return services.promotions.get_promotions_for_category(category)


@api.get("/api/promotions/code/{code}", response_model=Promotion)
def get_promotion_by_code(code: str, services: Services = Depends(get_services)):
    promotion = services.promotions.get_promotion_by_code(code)
    if promotion is None:
        raise PromotionNotFoundError(code)
    return promotion


@api.post("/api/promotions/code/{code}/calculate-discount", response_model=DiscountResponse)
def calculate_discount_by_code(
    code: str,
    order_amount: Decimal = Query(..., ge=0),
    services: Services = Depends(get_services)
):
    promotion = services.promotions.get_promotion_by_code(code)
    if promotion is None:
        raise PromotionNotFoundError(code)
    return DiscountResponse(
        promotion_id=promotion.id,
        code=promotion.code,
        order_amount=order_amount,
        discount=services.promotions.calculate_discount(promotion, order_amount)
    )


@api.get("/api/promotions/{promotion_id}", response_model=Promotion)
def get_promotion(promotion_id: int, services: Services = Depends(get_services)):
    return services.promotions.get_promotion(promotion_id)


@api.post("/api/promotions/{promotion_id}/calculate-discount", response_model=DiscountResponse)
def calculate_discount(
    promotion_id: int,
    order_amount: Decimal = Query(..., ge=0),
    services: Services = Depends(get_services)
):
    promotion = services.promotions.get_promotion(promotion_id)
    return DiscountResponse(
        promotion_id=promotion.id,
        code=promotion.code,
        order_amount=order_amount,
        discount=services.promotions.calculate_discount(promotion, order_amount)
    )


@api.post("/api/promotions", response_model=Promotion, status_code=201)
def create_promotion(promotion: Promotion, services: Services = Depends(get_services)):
    return services.promotions.create_promotion(promotion)


@api.put("/api/promotions/{promotion_id}", response_model=Promotion)
def update_promotion(promotion_id: int, patch: PromotionPatch, services: Services = Depends(get_services)):
    return services.promotions.update_promotion(promotion_id, patch)


@api.delete("/api/promotions/{promotion_id}", status_code=204)
def delete_promotion(promotion_id: int, services: Services = Depends(get_services)):
    services.promotions.delete_promotion(promotion_id)


@api.patch("/api/promotions/{promotion_id}/deactivate", status_code=204)
def deactivate_promotion(promotion_id: int, services: Services = Depends(get_services)):
    services.promotions.deactivate_promotion(promotion_id)


@api.post("/api/promotions/{promotion_id}/increment-usage", response_model=Promotion)
def increment_usage(promotion_id: int, services: Services = Depends(get_services)):
    return services.promotions.increment_usage(promotion_id)


# Cart endpoints
@api.get("/api/cart", response_model=Cart)
def get_cart(
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    return services.carts.get_cart_by_session(session_id)


@api.get("/api/cart/user/{user_id}", response_model=Cart)
def get_cart_by_user(user_id: str, services: Services = Depends(get_services)):
    return services.carts.get_cart_by_user(user_id)


@api.post("/api/cart/items", response_model=Cart)
def add_cart_item(
    request: CartItemRequest,
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    return services.carts.add_item(session_id, request.product_id, request.quantity, request.customer_group)


@api.put("/api/cart/items", response_model=Cart)
def update_cart_item(
    request: CartItemRequest,
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    """Set an item's quantity; quantity <= 0 removes the item"""
    return services.carts.update_item(session_id, request.product_id, request.quantity, request.customer_group)


@api.delete("/api/cart/items/{product_id}", response_model=Cart)
def remove_cart_item(
    product_id: int,
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    return services.carts.remove_item(session_id, product_id)


@api.post("/api/cart/promotions/{promotion_code}", response_model=Cart)
def apply_promotion(
    promotion_code: str,
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    return services.carts.apply_promotion(session_id, promotion_code)


@api.delete("/api/cart/promotions", response_model=Cart)
def remove_promotion(
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    return services.carts.remove_promotion(session_id)


@api.delete("/api/cart/clear", status_code=204)
def clear_cart(
    session_id: str = Header(..., alias=Config.SESSION_HEADER, description="Session identifier"),
    services: Services = Depends(get_services)
):
    services.carts.clear_cart(session_id)


@api.post("/api/cart/cleanup")
def cleanup_abandoned_carts(
    days_old: int = Query(Config.ABANDONED_CART_DAYS, ge=0),
    services: Services = Depends(get_services)
):
    deleted = services.carts.cleanup_abandoned_carts(days_old)
    return {"deleted": deleted, "days_old": days_old, "tenant": get_current_tenant()}


# Error handlers
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "message": str(exc)}
    )


async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid argument", "message": str(exc)}
    )


async def business_rule_handler(request: Request, exc: BusinessRuleViolation):
    return JSONResponse(
        status_code=409,
        content={"error": "Business rule violation", "message": str(exc)}
    )


async def storage_error_handler(request: Request, exc: StorageConnectionError):
    logger.error(f"Storage unavailable for tenant {get_current_tenant()}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": "Redis connection failed"}
    )


# Generic exception handler for unhandled errors
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "type": type(exc).__name__
        }
    )


def create_app(
    router: Optional[DataRouter] = None,
    clock: Optional[Clock] = None,
    registry: Optional[TenantRegistry] = None
) -> FastAPI:
    app = FastAPI(
        title="Storefront API",
        description="Multi-tenant catalogue, pricing, promotion and cart service",
        version="1.0.0"
    )

    app.state.services = build_services(router or build_router(), clock, registry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it runs first: everything inside sees the tenant
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(TenantMiddleware)

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(InvalidArgumentError, invalid_argument_handler)
    app.add_exception_handler(BusinessRuleViolation, business_rule_handler)
    app.add_exception_handler(StorageConnectionError, storage_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(api)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
