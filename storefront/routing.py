"""
Tenant-aware storage routing.

Every repository call asks the router for the partition of the current
tenant. The decision is made on each call from the tenant context and is
never cached.
"""
import logging
from typing import Dict, Mapping, Optional

from storefront.config import Config
from storefront.exceptions import InvalidTenantError
from storefront.redis_client import RedisClient
from storefront.tenant_context import get_current_tenant

logger = logging.getLogger(__name__)


class DataRouter:
    """Maps tenant identifiers to Redis partitions.

    An absent tenant, the default tenant, and (unless strict) an unknown
    tenant all route to the default partition.
    """

    def __init__(
        self,
        partitions: Mapping[str, RedisClient],
        default_tenant: str = Config.DEFAULT_TENANT,
        strict: bool = False
    ):
        if default_tenant not in partitions:
            raise ValueError(f"No partition configured for default tenant '{default_tenant}'")
        self._partitions: Dict[str, RedisClient] = dict(partitions)
        self.default_tenant = default_tenant
        self.strict = strict

    def current_tenant_key(self) -> str:
        """Tenant whose partition serves the current call"""
        tenant = get_current_tenant()
        if tenant is None or tenant == self.default_tenant:
            return self.default_tenant
        if tenant in self._partitions:
            return tenant
        if self.strict:
            raise InvalidTenantError(tenant)
        # Unknown tenants share the default partition; this can hide misconfiguration
        logger.warning(f"No partition for tenant '{tenant}', routing to '{self.default_tenant}'")
        return self.default_tenant

    def current_partition(self) -> RedisClient:
        return self._partitions[self.current_tenant_key()]

    def partition_for(self, tenant_id: str) -> Optional[RedisClient]:
        return self._partitions.get(tenant_id)

    def close(self):
        for partition in self._partitions.values():
            partition.close()


def build_router() -> DataRouter:
    """Create one Redis partition per configured tenant"""
    partitions = {
        tenant: RedisClient(tenant, db=Config.tenant_db(tenant))
        for tenant in Config.TENANTS
    }
    return DataRouter(
        partitions,
        default_tenant=Config.DEFAULT_TENANT,
        strict=Config.STRICT_TENANT_ROUTING
    )
