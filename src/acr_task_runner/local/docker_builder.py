"""Local image builds through the Docker daemon."""

import logging
import os
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import docker
from docker.errors import APIError, BuildError, DockerException

from ..core.config import LocalBuildConfig
from ..errors import InputError, LocalBuildError
from ..utils.file_locator import find_build_file

logger = logging.getLogger(__name__)

# docker build flags that map onto Docker SDK build parameters
_VALUE_FLAGS = {
    "--build-arg": "buildargs",
    "--label": "labels",
    "--target": "target",
    "--platform": "platform",
    "--network": "network_mode",
}
_SWITCH_FLAGS = {
    "--no-cache": "nocache",
    "--pull": "pull",
}


@dataclass
class BuildResult:
    """Result of a local image build."""
    image_id: str
    tags: List[str]
    output: str
    duration_seconds: float


@dataclass
class BuildRequest:
    """Everything needed for one `docker build`."""
    dockerfile: Path
    context: Path
    tags: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


def _key_value(flag: str, raw: str) -> tuple:
    key, sep, value = raw.partition("=")
    if not key:
        raise InputError(f"Invalid value for {flag}: '{raw}'")
    if not sep:
        # `--build-arg NAME` takes the value from the environment
        value = os.environ.get(key, "")
    return key, value


def parse_build_arguments(arguments: str) -> Dict[str, Any]:
    """Translate a `docker build` argument string into SDK keyword arguments.

    Raises:
        InputError: an unsupported flag or a flag missing its value
    """
    options: Dict[str, Any] = {}
    tokens = shlex.split(arguments or "")
    i = 0
    while i < len(tokens):
        token = tokens[i]
        flag, sep, inline_value = token.partition("=")

        if flag in _SWITCH_FLAGS:
            options[_SWITCH_FLAGS[flag]] = True
            i += 1
            continue

        if flag not in _VALUE_FLAGS:
            raise InputError(f"Unsupported docker build argument: {token}")

        if sep:
            value = inline_value
            i += 1
        else:
            if i + 1 >= len(tokens):
                raise InputError(f"Missing value for {flag}")
            value = tokens[i + 1]
            i += 2

        param = _VALUE_FLAGS[flag]
        if param in ("buildargs", "labels"):
            key, item = _key_value(flag, value)
            options.setdefault(param, {})[key] = item
        else:
            options[param] = value

    return options


def image_tags(repository: Optional[str], tags: List[str]) -> List[str]:
    """``repository:tag`` for every tag, or the bare repository without tags."""
    if not repository:
        return []
    if not tags:
        return [repository]
    return [f"{repository}:{tag}" for tag in tags]


def parse_labels(labels: List[str]) -> Dict[str, str]:
    parsed = {}
    for label in labels:
        key, _, value = label.partition("=")
        if key:
            parsed[key.strip()] = value.strip()
    return parsed


def build_request(config: LocalBuildConfig, cwd: Path) -> BuildRequest:
    """Resolve the Dockerfile and assemble a build request from configuration."""
    dockerfile = Path(find_build_file(config.dockerfile, cwd))
    if not dockerfile.is_absolute():
        dockerfile = cwd / dockerfile
    if not dockerfile.is_file():
        raise InputError(f"Dockerfile not found: {dockerfile}")

    if config.context:
        context = Path(config.context)
        if not context.is_absolute():
            context = cwd / context
    else:
        context = dockerfile.parent

    options = parse_build_arguments(config.arguments)
    labels = parse_labels(config.labels)
    labels.update(options.pop("labels", {}))

    return BuildRequest(
        dockerfile=dockerfile,
        context=context,
        tags=image_tags(config.repository, config.tags),
        labels=labels,
        options=options,
    )


class DockerBuilder:
    """Build images with the local Docker daemon.

    The SDK client is created on first use so commands that never build do
    not need a running daemon.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        """Lazy-initialize Docker client."""
        if self._client is None:
            try:
                self._client = docker.from_env()
                self._client.ping()
            except DockerException as e:
                raise LocalBuildError(
                    f"Failed to connect to Docker daemon. Is Docker running? {e}"
                )
        return self._client

    def build(
        self,
        request: BuildRequest,
        on_output: Optional[Callable[[str], None]] = None,
    ) -> BuildResult:
        """Run the build, streaming daemon output to ``on_output``.

        Raises:
            LocalBuildError: the daemon rejected the build or a step failed
        """
        try:
            dockerfile = os.path.relpath(request.dockerfile, request.context)
        except ValueError:
            dockerfile = str(request.dockerfile)

        primary_tag = request.tags[0] if request.tags else None
        output: List[str] = []
        image_id: Optional[str] = None
        start_time = time.time()

        logger.info(f"Building {request.dockerfile} in context {request.context}")

        try:
            stream = self.client.api.build(
                path=str(request.context),
                dockerfile=dockerfile,
                tag=primary_tag,
                labels=request.labels or None,
                rm=True,
                decode=True,
                **request.options,
            )
            for chunk in stream:
                if "error" in chunk:
                    raise BuildError(chunk["error"].strip(), output)
                line = chunk.get("stream")
                if line:
                    output.append(line)
                    if on_output:
                        on_output(line)
                aux = chunk.get("aux")
                if isinstance(aux, dict) and aux.get("ID"):
                    image_id = aux["ID"]

            for tag in request.tags[1:]:
                repository, _, tag_name = tag.rpartition(":")
                self.client.api.tag(image_id or primary_tag, repository, tag_name)

        except BuildError as e:
            raise LocalBuildError(f"Docker build failed: {e.msg}")
        except APIError as e:
            raise LocalBuildError(f"Docker API error: {e}")

        duration = time.time() - start_time
        logger.info(f"Build completed: image={image_id}, duration={duration:.1f}s")

        return BuildResult(
            image_id=image_id or "",
            tags=request.tags,
            output="".join(output),
            duration_seconds=duration,
        )

    def health_check(self) -> bool:
        """Check if Docker is available and working."""
        try:
            self.client.ping()
            return True
        except (LocalBuildError, DockerException) as e:
            logger.warning(f"Docker health check failed: {e}")
            return False
