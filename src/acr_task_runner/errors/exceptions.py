"""Exception hierarchy for task runs."""

from typing import Optional


class TaskRunnerError(Exception):
    """Base class for all fatal task runner errors."""


class InputError(TaskRunnerError):
    """A required input is missing or cannot be resolved."""


class BuildFileNotFoundError(InputError):
    """No file matched the build definition pattern."""

    def __init__(self, pattern: str, root: Optional[str] = None):
        self.pattern = pattern
        self.root = root
        location = f" under {root}" if root else ""
        super().__init__(f"No build file matching '{pattern}' was found{location}")


class RemoteTaskError(TaskRunnerError):
    """A control-plane request failed.

    Carries the operation name and the identifier it was issued for so the
    whole failure renders as a single line.
    """

    def __init__(
        self,
        operation: str,
        identifier: str,
        detail: str,
        status_code: Optional[int] = None,
    ):
        self.operation = operation
        self.identifier = identifier
        self.detail = detail
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code else ""
        super().__init__(f"{operation} failed for {identifier}{status}: {detail}")


class ResponseContractError(TaskRunnerError):
    """The service answered successfully but a required field was empty."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Could not extract {field} from response")


class LocalBuildError(TaskRunnerError):
    """The local Docker build could not run or reported an error."""


class CredentialError(TaskRunnerError):
    """An access token could not be acquired."""
