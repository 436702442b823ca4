"""
Shared configuration management for the Resource Inventory Gateway.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream Azure Resource Manager
    management_host: str = Field(default="https://management.azure.com")
    cost_api_version: str = Field(default="2023-11-01")

    # Access token acquisition
    token_scope: str = Field(default="https://management.azure.com/.default")
    token_refresh_margin_seconds: int = Field(default=300, ge=0)
    token_timeout_seconds: float = Field(default=10.0, gt=0)
    authority_host: str = Field(default="https://login.microsoftonline.com")
    static_access_token: Optional[str] = Field(default=None)
    managed_identity_client_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_MANAGED_IDENTITY_CLIENT_ID", "MANAGED_IDENTITY_CLIENT_ID"),
    )
    azure_tenant_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_AZURE_TENANT_ID", "AZURE_TENANT_ID"),
    )
    azure_client_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_AZURE_CLIENT_ID", "AZURE_CLIENT_ID"),
    )
    azure_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GATEWAY_AZURE_CLIENT_SECRET", "AZURE_CLIENT_SECRET"),
    )

    # Fan-out
    fanout_max_concurrency: int = Field(default=10, ge=1)
    fanout_call_timeout_seconds: float = Field(default=30.0, gt=0)
    forward_upstream_errors: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8000
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
