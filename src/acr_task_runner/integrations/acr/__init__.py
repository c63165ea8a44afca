"""Azure Container Registry Tasks integration."""

from .client import AcrTaskClient
from .credentials import AzureCliCredential, StaticTokenCredential, TokenCredential, credential_from_config

__all__ = [
    "AcrTaskClient",
    "AzureCliCredential",
    "StaticTokenCredential",
    "TokenCredential",
    "credential_from_config",
]
