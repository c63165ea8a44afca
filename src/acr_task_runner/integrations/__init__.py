"""Remote control-plane integrations."""

from .base import ClientResult, RemoteTaskClient, SourceUploadLocation

__all__ = ["ClientResult", "RemoteTaskClient", "SourceUploadLocation"]
