"""Download a run log to a temporary file and read it back."""

import logging
import os
import tempfile
from pathlib import Path

from ..integrations.base import RemoteTaskClient
from ..utils.error_handling import best_effort

logger = logging.getLogger(__name__)


async def fetch_log(client: RemoteTaskClient, url: str) -> str:
    """Return the full text of the log at ``url``.

    The temporary file is removed on every exit path.

    Raises:
        RemoteTaskError: the download failed
    """
    fd, name = tempfile.mkstemp(prefix="acr-run-", suffix=".log")
    os.close(fd)
    path = Path(name)

    try:
        result = await client.download(url, path)
        if not result.ok:
            raise result.error
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            content = handle.read()
        logger.debug(f"Read {len(content)} chars of run log from {path}")
        return content
    finally:
        with best_effort("removing downloaded run log"):
            path.unlink(missing_ok=True)
