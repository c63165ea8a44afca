"""Shared test fixtures for unit tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from acr_task_runner.core.config import RegistryConfig, TaskRunnerConfig
from acr_task_runner.core.task_descriptor import RegistryEndpoint
from acr_task_runner.integrations.base import ClientResult, RemoteTaskClient


@pytest.fixture
def registry():
    return RegistryEndpoint(
        name="contosoregistry",
        subscription_id="sub-123",
        resource_group="rg-build",
        location="westus2",
    )


@pytest.fixture
def runner_config(tmp_path):
    """Complete configuration pointing at a throwaway workspace."""
    return TaskRunnerConfig(
        workspace=tmp_path,
        registry=RegistryConfig(
            subscription_id="sub-123",
            resource_group="rg-build",
            name="contosoregistry",
        ),
        auth={"access_token": "token-abc", "use_azure_cli": False},
        polling={"interval": 0},
    )


@pytest.fixture
def make_client():
    """Factory for a fake control-plane client.

    ``statuses`` feeds get_run_status in order; entries may be plain status
    strings or ready-made ClientResult values.
    """

    def _make(
        statuses,
        *,
        task_id="/subscriptions/sub-123/tasks/buildtask",
        run_id="cb1",
        log_link="https://logs.example/cb1.log?sig=abc",
        log_content="Step 1/2 : FROM alpine\nStep 2/2 : RUN echo hi\n",
    ):
        client = MagicMock(spec=RemoteTaskClient)
        client.fetch_task = AsyncMock(return_value=ClientResult.success(False))
        client.create_or_update_task = AsyncMock(return_value=ClientResult.success(task_id))
        client.start_run = AsyncMock(return_value=ClientResult.success(run_id))
        client.get_run_status = AsyncMock(side_effect=[
            s if isinstance(s, ClientResult) else ClientResult.success(s) for s in statuses
        ])
        client.cancel_run = AsyncMock(return_value=ClientResult.success(None))
        client.get_log_link = AsyncMock(return_value=ClientResult.success(log_link))

        async def download(url, destination):
            destination.write_text(log_content)
            return ClientResult.success(None)

        client.download = AsyncMock(side_effect=download)
        client.aclose = AsyncMock()
        return client

    return _make
