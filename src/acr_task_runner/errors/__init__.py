"""Error types and user-friendly error translation."""

from .exceptions import (
    BuildFileNotFoundError,
    CredentialError,
    InputError,
    LocalBuildError,
    RemoteTaskError,
    ResponseContractError,
    TaskRunnerError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "BuildFileNotFoundError",
    "CredentialError",
    "ErrorTranslator",
    "InputError",
    "LocalBuildError",
    "RemoteTaskError",
    "ResponseContractError",
    "TaskRunnerError",
    "UserFriendlyError",
]
