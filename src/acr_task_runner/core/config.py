"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("acr-task.yaml")


def _split_delimited(value: str) -> List[str]:
    return [item.strip() for item in value.replace(",", "\n").splitlines() if item.strip()]


class RegistryConfig(BaseModel):
    """Target Azure Container Registry."""
    subscription_id: str = ""
    resource_group: str = ""
    name: str = ""
    login_server: Optional[str] = None  # Defaults to <name>.azurecr.io
    location: str = "eastus"

    @property
    def is_complete(self) -> bool:
        return bool(self.subscription_id and self.resource_group and self.name)

    def missing_fields(self) -> List[str]:
        return [
            field for field in ("subscription_id", "resource_group", "name")
            if not getattr(self, field)
        ]


class AuthConfig(BaseModel):
    """Credential source for Azure Resource Manager."""
    access_token: Optional[str] = None
    # Fall back to `az account get-access-token` when no token is configured
    use_azure_cli: bool = True
    arm_endpoint: str = "https://management.azure.com"
    api_version: str = "2019-06-01-preview"

    @field_validator('arm_endpoint')
    @classmethod
    def validate_arm_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"arm_endpoint must start with http:// or https://, got '{v}'"
            )
        return v.rstrip("/")


class PollingConfig(BaseModel):
    """Run status polling."""
    interval: float = 60.0  # Seconds between status checks

    @field_validator('interval')
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"polling interval must be >= 0, got {v}")
        return v


class TransportConfig(BaseModel):
    """Per-request HTTP settings."""
    timeout: float = 30.0
    # Log downloads can be large; they get their own read timeout
    download_timeout: float = 300.0


class TaskInputs(BaseModel):
    """Inputs describing the task to run. CLI options override these."""
    task_name: Optional[str] = None
    dockerfile_or_yaml: Optional[str] = None
    image_names: List[str] = Field(default_factory=list)
    arguments: str = ""
    values_file_path: Optional[str] = None
    context_path: Optional[str] = None
    cwd: Optional[Path] = None

    @field_validator('image_names', mode='before')
    @classmethod
    def split_image_names(cls, v: Any) -> Any:
        """Accept newline or comma separated strings as well as lists."""
        if isinstance(v, str):
            return _split_delimited(v)
        return v


class LocalBuildConfig(BaseModel):
    """Local `docker build` settings."""
    dockerfile: str = "**/Dockerfile"
    # Defaults to the directory holding the Dockerfile
    context: Optional[str] = None
    repository: Optional[str] = None
    tags: List[str] = Field(default_factory=lambda: ["latest"])
    labels: List[str] = Field(default_factory=list)
    arguments: str = ""

    @field_validator('tags', 'labels', mode='before')
    @classmethod
    def split_lists(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _split_delimited(v)
        return v


class TaskRunnerConfig(BaseSettings):
    """Main task runner configuration."""
    model_config = SettingsConfigDict(
        env_prefix="ACR_TASK_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="allow",
    )

    workspace: Path = Field(default=Path("."))
    log_level: str = "INFO"

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    task: TaskInputs = Field(default_factory=TaskInputs)
    local_build: LocalBuildConfig = Field(default_factory=LocalBuildConfig)


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> TaskRunnerConfig:
    """Internal loader for runner config (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    data = _expand_env_vars(data)
    return TaskRunnerConfig(**data)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> TaskRunnerConfig:
    """Load runner configuration from YAML file.

    Uses mtime-based caching: returns the cached config if the file hasn't changed.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration. "
            "To customize settings, create a config file at this path."
        )
        return TaskRunnerConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else TaskRunnerConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "auth.access_token")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
