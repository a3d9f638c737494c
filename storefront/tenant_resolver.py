"""
Tenant resolution from request metadata and validation against the
configured tenant registry.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from storefront.config import Config
from storefront.exceptions import InvalidTenantError
from storefront.tenant_context import TenantContext, set_current_tenant

logger = logging.getLogger(__name__)

TENANT_PATH_PREFIX = "/tenant/"


@dataclass(frozen=True)
class RequestMetadata:
    """The parts of an inbound request that can name a tenant"""

    tenant_header: Optional[str] = None
    host: Optional[str] = None
    path: str = "/"


class TenantResolver:
    """Derives the tenant for a request.

    Precedence, first match wins:
        1. explicit tenant header, when non-empty
        2. subdomain, when the host has more than two labels and is not www
        3. ``/tenant/{id}/...`` path prefix
        4. the default tenant

    The result is not validated against the registry.
    """

    def __init__(self, default_tenant: str = Config.DEFAULT_TENANT):
        self.default_tenant = default_tenant

    def resolve(self, metadata: RequestMetadata) -> TenantContext:
        if metadata.tenant_header and metadata.tenant_header.strip():
            return TenantContext(metadata.tenant_header.strip(), "header")

        subdomain = self._extract_subdomain(metadata.host)
        if subdomain:
            return TenantContext(subdomain, "subdomain")

        path_tenant = extract_path_tenant(metadata.path)
        if path_tenant:
            return TenantContext(path_tenant, "path")

        return TenantContext(self.default_tenant, "default")

    @staticmethod
    def _extract_subdomain(host: Optional[str]) -> Optional[str]:
        if not host:
            return None
        hostname = host.split(":", 1)[0]
        parts = hostname.split(".")
        if len(parts) > 2 and parts[0] and parts[0] != "www":
            return parts[0]
        return None


def extract_path_tenant(path: Optional[str]) -> Optional[str]:
    """Tenant id from a ``/tenant/{id}/...`` path, if present"""
    if not path or not path.startswith(TENANT_PATH_PREFIX):
        return None
    segment = path[len(TENANT_PATH_PREFIX):].split("/", 1)[0]
    return segment or None


class TenantRegistry:
    """Statically configured set of valid tenant identifiers"""

    def __init__(self, tenants: Optional[Iterable[str]] = None):
        self._tenants: List[str] = list(tenants if tenants is not None else Config.TENANTS)

    def available_tenants(self) -> List[str]:
        return list(self._tenants)

    def is_valid_tenant(self, tenant_id: Optional[str]) -> bool:
        return tenant_id is not None and tenant_id in self._tenants

    def validate_tenant(self, tenant_id: Optional[str]) -> None:
        if not self.is_valid_tenant(tenant_id):
            logger.warning(f"Invalid tenant ID: {tenant_id}")
            raise InvalidTenantError(tenant_id)

    def switch_tenant(self, tenant_id: Optional[str]) -> None:
        """Validate tenant_id and make it the calling operation's tenant"""
        self.validate_tenant(tenant_id)
        set_current_tenant(tenant_id)
        logger.info(f"Switched to tenant: {tenant_id}")
