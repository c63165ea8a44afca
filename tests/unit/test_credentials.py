"""Tests for ARM token credentials."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from acr_task_runner.core.config import AuthConfig
from acr_task_runner.errors import CredentialError, InputError
from acr_task_runner.integrations.acr.credentials import (
    AzureCliCredential,
    StaticTokenCredential,
    credential_from_config,
)


def _process(returncode=0, stdout=b"", stderr=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock()
    return process


class TestStaticToken:
    @pytest.mark.asyncio
    async def test_returns_token(self):
        assert await StaticTokenCredential("abc").get_token() == "abc"

    def test_empty_token_rejected(self):
        with pytest.raises(InputError):
            StaticTokenCredential("")


class TestAzureCli:
    @pytest.mark.asyncio
    async def test_token_is_cached(self):
        payload = json.dumps({"accessToken": "cli-token", "expires_on": time.time() + 3600}).encode()
        exec_mock = AsyncMock(return_value=_process(stdout=payload))

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            credential = AzureCliCredential()
            first = await credential.get_token()
            second = await credential.get_token()

        assert first == second == "cli-token"
        assert exec_mock.await_count == 1
        args = exec_mock.await_args.args
        assert args[:3] == ("az", "account", "get-access-token")

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed(self):
        payload = json.dumps({"accessToken": "short", "expires_on": time.time() + 10}).encode()
        exec_mock = AsyncMock(return_value=_process(stdout=payload))

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            credential = AzureCliCredential()
            await credential.get_token()
            await credential.get_token()

        assert exec_mock.await_count == 2

    @pytest.mark.asyncio
    async def test_cli_failure_is_credential_error(self):
        exec_mock = AsyncMock(return_value=_process(returncode=1, stderr=b"Please run 'az login'"))

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            with pytest.raises(CredentialError, match="az login"):
                await AzureCliCredential().get_token()

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        process = _process()
        process.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        exec_mock = AsyncMock(return_value=process)

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            with pytest.raises(CredentialError, match="Timed out"):
                await AzureCliCredential(timeout=1).get_token()

        process.kill.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stdout", [b"not json", b'{"tokenType": "Bearer"}', b"[]"])
    async def test_malformed_output_is_credential_error(self, stdout):
        exec_mock = AsyncMock(return_value=_process(stdout=stdout))

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            with pytest.raises(CredentialError, match="Unexpected Azure CLI token output"):
                await AzureCliCredential().get_token()

    @pytest.mark.asyncio
    async def test_missing_cli_is_credential_error(self):
        exec_mock = AsyncMock(side_effect=FileNotFoundError("az"))

        with patch("acr_task_runner.integrations.acr.credentials.asyncio.create_subprocess_exec", exec_mock):
            with pytest.raises(CredentialError, match="Could not start Azure CLI"):
                await AzureCliCredential().get_token()


class TestCredentialFromConfig:
    def test_static_token_preferred(self):
        credential = credential_from_config(AuthConfig(access_token="abc", use_azure_cli=True))

        assert isinstance(credential, StaticTokenCredential)

    def test_cli_fallback(self):
        assert isinstance(credential_from_config(AuthConfig()), AzureCliCredential)

    def test_nothing_configured(self):
        with pytest.raises(InputError):
            credential_from_config(AuthConfig(use_azure_cli=False))
