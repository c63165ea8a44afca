"""Resolve the build context handed to the remote service.

Remote references (git URLs, http(s) archives) go through unchanged. A local
directory is packed into a tar.gz and uploaded to the registry's source
upload location; the returned relative path becomes the context.
"""

import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import InputError, ResponseContractError
from ..integrations.acr.client import AcrTaskClient
from ..utils.error_handling import best_effort

logger = logging.getLogger(__name__)

REMOTE_CONTEXT_PREFIXES = ("http://", "https://", "git@", "oci://")
EXCLUDED_NAMES = frozenset({".git"})


def is_remote_context(context: str) -> bool:
    return context.startswith(REMOTE_CONTEXT_PREFIXES)


def _exclude(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    parts = Path(info.name).parts
    if any(part in EXCLUDED_NAMES for part in parts):
        return None
    return info


def archive_directory(source_dir: Path, destination: Path) -> Path:
    """Pack the contents of ``source_dir`` into ``destination`` (tar.gz)."""
    with tarfile.open(destination, "w:gz") as archive:
        for entry in sorted(source_dir.iterdir()):
            archive.add(entry, arcname=entry.name, filter=_exclude)
    logger.debug(f"Archived {source_dir} to {destination} ({destination.stat().st_size} bytes)")
    return destination


async def resolve_context(client: AcrTaskClient, context: str, cwd: Path) -> str:
    """Return the context path to put on the task.

    Raises:
        InputError: the local context directory does not exist
        RemoteTaskError: requesting the upload URL or uploading failed
        ResponseContractError: the service returned no upload location
    """
    if is_remote_context(context):
        return context

    source_dir = Path(context)
    if not source_dir.is_absolute():
        source_dir = cwd / source_dir
    if not source_dir.is_dir():
        raise InputError(f"Build context directory not found: {source_dir}")

    location_result = await client.get_source_upload_location()
    if not location_result.ok:
        raise location_result.error
    location = location_result.value
    if location is None:
        raise ResponseContractError("uploadUrl")

    fd, name = tempfile.mkstemp(prefix="acr-context-", suffix=".tar.gz")
    os.close(fd)
    archive = Path(name)
    try:
        archive_directory(source_dir, archive)
        upload_result = await client.upload_source(location, archive)
        if not upload_result.ok:
            raise upload_result.error
    finally:
        with best_effort("removing source archive"):
            archive.unlink(missing_ok=True)

    logger.info(f"Uploaded build context {source_dir} as {location.relative_path}")
    return location.relative_path
