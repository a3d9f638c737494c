"""
Middleware for FastAPI: tenant scoping, request logging and metrics.
"""
import time
import hashlib
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.config import Config
from storefront.tenant_context import get_current_tenant, tenant_scope
from storefront.tenant_resolver import (
    TENANT_PATH_PREFIX,
    RequestMetadata,
    TenantResolver,
    extract_path_tenant,
)

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]


def strip_tenant_prefix(path: str, tenant_id: str) -> str:
    """'/tenant/acme/api/cart' -> '/api/cart'"""
    prefix = f"{TENANT_PATH_PREFIX}{tenant_id}"
    stripped = path[len(prefix):]
    return stripped if stripped.startswith("/") else "/" + stripped


class TenantMiddleware(BaseHTTPMiddleware):
    """Resolves the request's tenant and scopes the request to it.

    The tenant is cleared when the request finishes, whether the handler
    succeeded or raised.
    """

    def __init__(self, app, resolver: Optional[TenantResolver] = None, header: str = Config.TENANT_HEADER):
        super().__init__(app)
        self.resolver = resolver or TenantResolver()
        self.header = header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = self.resolver.resolve(
            RequestMetadata(
                tenant_header=request.headers.get(self.header),
                host=request.headers.get("host"),
                path=request.url.path
            )
        )

        # Stripped whichever source picked the tenant
        path_tenant = extract_path_tenant(request.url.path)
        if path_tenant:
            path = strip_tenant_prefix(request.url.path, path_tenant)
            request.scope["path"] = path
            request.scope["raw_path"] = path.encode()

        request.state.tenant = context
        with tenant_scope(context.tenant_id):
            logger.debug(f"Tenant context set to: {context.tenant_id} (from {context.source})")
            return await call_next(request)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and latency metrics"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        session_id = request.headers.get(Config.SESSION_HEADER)
        hashed_session_id = hash_identifier(session_id) if session_id else None
        tenant = get_current_tenant()

        # Log request (no PII)
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "tenant": tenant,
                "hashed_session_id": hashed_session_id,
                "remote_addr": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)

            latency_ms = (time.time() - start_time) * 1000

            logger.info(
                f"Response: {request.method} {request.url.path} {response.status_code}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "latency_ms": round(latency_ms, 2),
                    "tenant": tenant,
                    "hashed_session_id": hashed_session_id
                }
            )

            response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
            if tenant:
                response.headers[Config.TENANT_HEADER] = tenant

            return response

        except Exception as e:
            logger.error(
                f"Error: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "tenant": tenant,
                    "hashed_session_id": hashed_session_id
                },
                exc_info=True
            )
            # Re-raise so the application's exception handlers still apply
            raise
