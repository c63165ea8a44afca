"""Base remote task client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Optional, TypeVar

from ..errors import RemoteTaskError

T = TypeVar("T")


@dataclass(frozen=True)
class ClientResult(Generic[T]):
    """Outcome of one control-plane call: a value or an error, never both.

    Expected "not found" and "empty" answers are values (``False`` / ``None``),
    so ``error`` is reserved for transport and service failures.
    """

    value: Optional[T] = None
    error: Optional[RemoteTaskError] = None

    def __post_init__(self):
        if self.error is not None and self.value is not None:
            raise ValueError("ClientResult cannot carry both a value and an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "ClientResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: RemoteTaskError) -> "ClientResult[T]":
        return cls(error=error)


@dataclass
class SourceUploadLocation:
    """Where to upload a source archive and how the service refers to it."""
    upload_url: str
    relative_path: str


class RemoteTaskClient(ABC):
    """Operations the orchestrator needs from the remote control plane.

    A client is bound to one task descriptor for its lifetime.
    """

    @abstractmethod
    async def fetch_task(self) -> ClientResult[bool]:
        """Check whether the task exists. Not found is ``False``, not an error."""

    @abstractmethod
    async def create_or_update_task(self) -> ClientResult[str]:
        """Create or update the task; the value is the task id (may be empty)."""

    @abstractmethod
    async def start_run(self, task_id: str) -> ClientResult[str]:
        """Schedule a run of ``task_id``; the value is the run id (may be empty)."""

    @abstractmethod
    async def get_run_status(self, run_id: str) -> ClientResult[str]:
        """Read the run's current status string."""

    @abstractmethod
    async def cancel_run(self, run_id: str) -> ClientResult[None]:
        """Ask the service to cancel the run. Best effort."""

    @abstractmethod
    async def get_log_link(self, run_id: str) -> ClientResult[str]:
        """Resolve the download link of the run's log (may be empty)."""

    @abstractmethod
    async def download(self, url: str, destination: Path) -> ClientResult[None]:
        """Write the artifact at ``url`` to ``destination``."""

    async def aclose(self) -> None:
        """Release transport resources."""
