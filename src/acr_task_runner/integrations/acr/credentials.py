"""Access token sources for Azure Resource Manager.

The client only needs a bearer token; where it comes from is up to the
credential. Tokens are resolved lazily on every request, so a credential
that caches and refreshes keeps long polling sessions authenticated.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from ...errors import CredentialError, InputError

logger = logging.getLogger(__name__)

ARM_RESOURCE = "https://management.azure.com/"

# Refresh this many seconds before the reported expiry
_EXPIRY_MARGIN = 300


class TokenCredential(ABC):
    """Opaque source of ARM bearer tokens."""

    @abstractmethod
    async def get_token(self) -> str:
        """Return a valid access token."""


class StaticTokenCredential(TokenCredential):
    """A token supplied up front, e.g. from configuration or a pipeline."""

    def __init__(self, token: str):
        if not token:
            raise InputError("Access token is empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token


class AzureCliCredential(TokenCredential):
    """Tokens from `az account get-access-token`, cached until near expiry."""

    def __init__(self, executable: str = "az", resource: str = ARM_RESOURCE, timeout: int = 60):
        self.executable = executable
        self.resource = resource
        self.timeout = timeout
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    async def get_token(self) -> str:
        if self._token and time.time() < self._expires_at - _EXPIRY_MARGIN:
            return self._token

        cmd = [
            self.executable, "account", "get-access-token",
            "--resource", self.resource,
            "--output", "json",
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CredentialError(f"Could not start Azure CLI ({self.executable}): {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CredentialError(f"Timed out after {self.timeout}s waiting for Azure CLI token")

        if process.returncode != 0:
            raise CredentialError(
                f"Azure CLI could not provide an access token: {stderr.decode(errors='replace').strip()}"
            )

        try:
            payload = json.loads(stdout)
            token = payload["accessToken"]
            # expires_on (epoch seconds) is only present in newer CLI versions
            expires_at = float(payload.get("expires_on") or time.time() + 3600)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CredentialError(f"Unexpected Azure CLI token output: {e!r}") from e

        self._token = token
        self._expires_at = expires_at
        logger.debug("Acquired ARM access token from Azure CLI")
        return self._token


def credential_from_config(auth_config) -> TokenCredential:
    """Pick a credential from :class:`AuthConfig`."""
    if auth_config.access_token:
        return StaticTokenCredential(auth_config.access_token)
    if auth_config.use_azure_cli:
        return AzureCliCredential()
    raise InputError(
        "No Azure credential configured: set auth.access_token or enable auth.use_azure_cli"
    )
