"""Health check module for validating runner configuration."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..core.config import TaskRunnerConfig
from ..local.docker_builder import DockerBuilder
from ..utils.subprocess_utils import check_command_exists

logger = logging.getLogger(__name__)


class CheckStatus(Enum):
    """Health check status."""
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass
class CheckResult:
    """Result of a health check."""
    name: str
    status: CheckStatus
    message: str
    fix_action: Optional[str] = None
    documentation: Optional[str] = None


class HealthChecker:
    """Validate configuration, credentials and local tooling."""

    def __init__(
        self,
        config: TaskRunnerConfig,
        config_path: Path,
        docker_builder: Optional[DockerBuilder] = None,
    ):
        self.config = config
        self.config_path = config_path
        self.docker_builder = docker_builder or DockerBuilder()

    def run_all_checks(self) -> List[CheckResult]:
        """Run comprehensive health checks."""
        return [
            self.check_config_file(),
            self.check_registry_settings(),
            self.check_credentials(),
            self.check_docker(),
        ]

    def check_config_file(self) -> CheckResult:
        """Verify the config file exists."""
        if not self.config_path.exists():
            return CheckResult(
                name="Config File",
                status=CheckStatus.WARNING,
                message=f"{self.config_path} not found, using defaults and ACR_TASK_* variables",
                fix_action=f"Create {self.config_path} with registry and task settings",
                documentation="README.md#configuration",
            )

        return CheckResult(
            name="Config File",
            status=CheckStatus.PASSED,
            message=f"Loaded {self.config_path}",
        )

    def check_registry_settings(self) -> CheckResult:
        """Verify the target registry is fully specified."""
        registry = self.config.registry
        if not registry.is_complete:
            missing = ", ".join(f"registry.{f}" for f in registry.missing_fields())
            return CheckResult(
                name="Registry Settings",
                status=CheckStatus.FAILED,
                message=f"Missing: {missing}",
                fix_action="Set them in the config file or as ACR_TASK_REGISTRY__* variables",
            )

        return CheckResult(
            name="Registry Settings",
            status=CheckStatus.PASSED,
            message=f"Registry {registry.name} in {registry.resource_group}",
        )

    def check_credentials(self) -> CheckResult:
        """Verify an ARM token source is available."""
        auth = self.config.auth
        if auth.access_token:
            return CheckResult(
                name="Credentials",
                status=CheckStatus.PASSED,
                message="Access token configured",
            )

        if not auth.use_azure_cli:
            return CheckResult(
                name="Credentials",
                status=CheckStatus.FAILED,
                message="No access token and Azure CLI fallback disabled",
                fix_action="Set auth.access_token or ACR_TASK_AUTH__ACCESS_TOKEN",
                documentation="README.md#authentication",
            )

        if not check_command_exists("az"):
            return CheckResult(
                name="Credentials",
                status=CheckStatus.FAILED,
                message="Azure CLI (az) not found on PATH",
                fix_action="Install the Azure CLI and run: az login",
                documentation="README.md#authentication",
            )

        return CheckResult(
            name="Credentials",
            status=CheckStatus.PASSED,
            message="Tokens will be requested from the Azure CLI",
        )

    def check_docker(self) -> CheckResult:
        """Docker is only needed for local builds, so a failure is a warning."""
        if self.docker_builder.health_check():
            return CheckResult(
                name="Docker Daemon",
                status=CheckStatus.PASSED,
                message="Docker daemon reachable",
            )

        return CheckResult(
            name="Docker Daemon",
            status=CheckStatus.WARNING,
            message="Docker daemon not reachable, `acr-task build` will not work",
            fix_action="Start Docker or set DOCKER_HOST",
        )
