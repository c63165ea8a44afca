"""Local container builds."""

from .docker_builder import BuildRequest, BuildResult, DockerBuilder, build_request

__all__ = ["BuildRequest", "BuildResult", "DockerBuilder", "build_request"]
