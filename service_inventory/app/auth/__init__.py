"""
Credential helpers for the Inventory Gateway.
"""

from .credentials import (
    AccessToken,
    ClientSecretTokenSource,
    CredentialProvider,
    ManagedIdentityTokenSource,
    StaticTokenSource,
    build_credential_provider,
)

__all__ = [
    "AccessToken",
    "ClientSecretTokenSource",
    "CredentialProvider",
    "ManagedIdentityTokenSource",
    "StaticTokenSource",
    "build_credential_provider",
]
