"""
Configuration management for the multi-tenant storefront.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


def _parse_list(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_mapping(raw: str) -> Dict[str, int]:
    """Parse 'tenant:db,tenant:db' into a dict"""
    mapping: Dict[str, int] = {}
    for part in _parse_list(raw):
        name, _, value = part.partition(":")
        if name and value:
            mapping[name.strip()] = int(value)
    return mapping


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "storefront")
    REGION: str = os.getenv("REGION", "ap-southeast-2")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Tenant settings
    DEFAULT_TENANT: str = os.getenv("DEFAULT_TENANT", "default")
    TENANTS: List[str] = _parse_list(os.getenv("TENANTS", "default,tenant1,tenant2"))
    TENANT_REDIS_DBS: Dict[str, int] = _parse_mapping(os.getenv("TENANT_REDIS_DBS", ""))
    TENANT_HEADER: str = os.getenv("TENANT_HEADER", "X-Tenant-ID")
    STRICT_TENANT_ROUTING: bool = os.getenv("STRICT_TENANT_ROUTING", "false").lower() == "true"

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    # Cart settings
    SESSION_HEADER: str = os.getenv("SESSION_HEADER", "X-Session-ID")
    ABANDONED_CART_DAYS: int = int(os.getenv("ABANDONED_CART_DAYS", "7"))

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))

    @classmethod
    def tenant_db(cls, tenant_id: str) -> int:
        """Redis logical database holding a tenant's partition"""
        if tenant_id in cls.TENANT_REDIS_DBS:
            return cls.TENANT_REDIS_DBS[tenant_id]
        return cls.TENANTS.index(tenant_id)

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_name = os.getenv("REDIS_SECRET_NAME")
        if not secret_name:
            return  # No secret name provided, use no auth

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
            if "endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["endpoint"]
        except Exception as e:
            # Continue without auth token; the first Redis call reports the failure
            logger.warning(f"Could not load Redis secrets from Secrets Manager: {e}")


if Config.DEFAULT_TENANT not in Config.TENANTS:
    Config.TENANTS.insert(0, Config.DEFAULT_TENANT)

# Load secrets at module import
Config.load_redis_secrets()
