"""Azure Container Registry Tasks client over the ARM REST API."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from ...core.task_descriptor import TaskDescriptor
from ...errors import RemoteTaskError, TaskRunnerError
from ..base import ClientResult, RemoteTaskClient, SourceUploadLocation
from .credentials import TokenCredential
from .request_body import run_request_body, task_body

logger = logging.getLogger(__name__)

DEFAULT_ARM_ENDPOINT = "https://management.azure.com"
DEFAULT_API_VERSION = "2019-06-01-preview"
MAX_ERROR_DETAIL_CHARS = 500


def _error_detail(response: httpx.Response) -> str:
    """Pull ``code: message`` out of an ARM error body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        code = error.get("code")
        return f"{code}: {error['message']}" if code else error["message"]
    text = response.text.strip()
    return text[:MAX_ERROR_DETAIL_CHARS] if text else response.reason_phrase


def _json(response: httpx.Response) -> Dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        logger.warning(f"Non-JSON response body from {response.request.url}")
        return {}
    return data if isinstance(data, dict) else {}


class AcrTaskClient(RemoteTaskClient):
    """Task and run operations for one task descriptor.

    Every call returns a :class:`ClientResult`; HTTP and transport failures
    become :class:`RemoteTaskError` values carrying the operation name and
    the task or run id.
    """

    def __init__(
        self,
        credential: TokenCredential,
        descriptor: TaskDescriptor,
        *,
        arm_endpoint: str = DEFAULT_ARM_ENDPOINT,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        download_timeout: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.credential = credential
        self.descriptor = descriptor
        self.api_version = api_version
        self.download_timeout = download_timeout
        self._client = client or httpx.AsyncClient(
            base_url=arm_endpoint,
            timeout=timeout,
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        """Close the underlying HTTP client when owned by this wrapper."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def task_name(self) -> str:
        return self.descriptor.resource_name

    @property
    def registry_path(self) -> str:
        return self.descriptor.registry.resource_id

    @property
    def task_path(self) -> str:
        return f"{self.registry_path}/tasks/{self.task_name}"

    def run_path(self, run_id: str) -> str:
        return f"{self.registry_path}/runs/{run_id}"

    async def _send(
        self,
        operation: str,
        identifier: str,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> ClientResult[httpx.Response]:
        """Issue one authenticated ARM request.

        With ``allow_not_found`` a 404 is a successful empty result. A token
        that cannot be acquired fails the call like a transport error.
        """
        try:
            token = await self.credential.get_token()
        except (TaskRunnerError, OSError, ValueError) as exc:
            return ClientResult.failure(RemoteTaskError(
                operation, identifier, f"could not acquire access token: {exc}",
            ))

        try:
            response = await self._client.request(
                method,
                path,
                params={"api-version": self.api_version},
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            return ClientResult.failure(RemoteTaskError(operation, identifier, detail))

        if allow_not_found and response.status_code == 404:
            return ClientResult.success(None)

        if response.is_error:
            return ClientResult.failure(RemoteTaskError(
                operation, identifier, _error_detail(response), response.status_code,
            ))

        return ClientResult.success(response)

    async def fetch_task(self) -> ClientResult[bool]:
        result = await self._send(
            "Fetch task", f"task {self.task_name}", "GET", self.task_path, allow_not_found=True,
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        return ClientResult.success(result.value is not None)

    async def create_or_update_task(self) -> ClientResult[str]:
        result = await self._send(
            "Create or update task", f"task {self.task_name}", "PUT", self.task_path,
            json=task_body(self.descriptor),
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        return ClientResult.success(_json(result.value).get("id"))

    async def start_run(self, task_id: str) -> ClientResult[str]:
        result = await self._send(
            "Schedule task run", f"task {task_id}", "POST", f"{self.registry_path}/scheduleRun",
            json=run_request_body(task_id),
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        data = _json(result.value)
        properties = data.get("properties") or {}
        return ClientResult.success(properties.get("runId") or data.get("name"))

    async def get_run_status(self, run_id: str) -> ClientResult[str]:
        result = await self._send("Fetch run", f"run {run_id}", "GET", self.run_path(run_id))
        if not result.ok:
            return ClientResult.failure(result.error)
        properties = _json(result.value).get("properties") or {}
        return ClientResult.success(properties.get("status"))

    async def cancel_run(self, run_id: str) -> ClientResult[None]:
        result = await self._send(
            "Cancel run", f"run {run_id}", "POST", f"{self.run_path(run_id)}/cancel",
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        return ClientResult.success(None)

    async def get_log_link(self, run_id: str) -> ClientResult[str]:
        result = await self._send(
            "Get log link", f"run {run_id}", "POST", f"{self.run_path(run_id)}/listLogSasUrl",
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        return ClientResult.success(_json(result.value).get("logLink"))

    async def get_source_upload_location(self) -> ClientResult[SourceUploadLocation]:
        """Ask the registry for a one-off upload URL for a source archive."""
        result = await self._send(
            "Get source upload URL", f"registry {self.descriptor.registry.name}",
            "POST", f"{self.registry_path}/listBuildSourceUploadUrl",
        )
        if not result.ok:
            return ClientResult.failure(result.error)
        data = _json(result.value)
        if not data.get("uploadUrl") or not data.get("relativePath"):
            return ClientResult.success(None)
        return ClientResult.success(SourceUploadLocation(
            upload_url=data["uploadUrl"],
            relative_path=data["relativePath"],
        ))

    async def upload_source(self, location: SourceUploadLocation, archive: Path) -> ClientResult[None]:
        """PUT the archive to the SAS upload URL (no ARM token needed)."""
        try:
            response = await self._client.put(
                location.upload_url,
                content=archive.read_bytes(),
                headers={"x-ms-blob-type": "BlockBlob"},
                timeout=self.download_timeout,
            )
        except httpx.HTTPError as exc:
            return ClientResult.failure(RemoteTaskError(
                "Upload source", location.relative_path, str(exc) or type(exc).__name__,
            ))
        if response.is_error:
            return ClientResult.failure(RemoteTaskError(
                "Upload source", location.relative_path, _error_detail(response), response.status_code,
            ))
        return ClientResult.success(None)

    async def download(self, url: str, destination: Path) -> ClientResult[None]:
        """Stream ``url`` into ``destination``."""
        try:
            async with self._client.stream("GET", url, timeout=self.download_timeout) as response:
                if response.is_error:
                    await response.aread()
                    return ClientResult.failure(RemoteTaskError(
                        "Download run log", destination.name, _error_detail(response),
                        response.status_code,
                    ))
                with destination.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as exc:
            return ClientResult.failure(RemoteTaskError(
                "Download run log", destination.name, str(exc) or type(exc).__name__,
            ))
        return ClientResult.success(None)
