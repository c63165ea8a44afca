"""Remote task definition model."""

import re
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

# Base-name suffixes that mark a multi-step task file rather than a Dockerfile
STEP_DEFINITION_SUFFIXES = (".yaml", ".yml")

ACR_TASK_YAML_VERSION = "v1.1.0"
RUN_REGISTRY_PLACEHOLDER = "{{.Run.Registry}}"


class RegistryEndpoint(BaseModel):
    """Identity of the target container registry."""
    name: str
    subscription_id: str
    resource_group: str
    location: str = "eastus"
    login_server: Optional[str] = None

    @property
    def resolved_login_server(self) -> str:
        return self.login_server or f"{self.name}.azurecr.io"

    @property
    def resource_id(self) -> str:
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.ContainerRegistry/registries/{self.name}"
        )


class StepKind(str, Enum):
    """Which step variant a task carries."""
    ENCODED = "EncodedTask"
    FILE = "FileTask"


class EncodedStep(BaseModel):
    """Inline build definition sent as base64 with the task."""
    content: str
    image_names: List[str] = Field(default_factory=list)
    arguments: str = ""


class FileStep(BaseModel):
    """Step definition read by the service from the build context."""
    task_file_path: str
    values_file_path: Optional[str] = None


class TaskDescriptor(BaseModel):
    """The remote task definition to create or update."""
    name: str
    registry: RegistryEndpoint
    step_kind: StepKind
    encoded_step: Optional[EncodedStep] = None
    file_step: Optional[FileStep] = None
    context_path: str

    @model_validator(mode='after')
    def validate_step_variant(self) -> 'TaskDescriptor':
        """Exactly one step variant is populated and it matches step_kind."""
        if self.encoded_step is not None and self.file_step is not None:
            raise ValueError("Task cannot have both an encoded step and a file step")

        if self.step_kind == StepKind.ENCODED and self.encoded_step is None:
            raise ValueError("EncodedTask step kind requires encoded_step")

        if self.step_kind == StepKind.FILE and self.file_step is None:
            raise ValueError("FileTask step kind requires file_step")

        return self

    @property
    def resource_name(self) -> str:
        """ARM-safe task name (alphanumeric, 5-50 characters)."""
        return to_resource_name(self.name)


def to_resource_name(display_name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", display_name)
    if len(cleaned) < 5:
        cleaned = f"{cleaned}acrtask"
    return cleaned[:50]


def is_step_definition_file(path: str) -> bool:
    """True when the path's base name ends with a task-file suffix."""
    base_name = PurePosixPath(path.replace("\\", "/")).name
    return base_name.lower().endswith(STEP_DEFINITION_SUFFIXES)


def _qualify_image(image_name: str) -> str:
    # Names that already carry a registry host are left alone
    first_segment = image_name.split("/", 1)[0]
    if "/" in image_name and ("." in first_segment or ":" in first_segment):
        return image_name
    return f"{RUN_REGISTRY_PLACEHOLDER}/{image_name}"


def render_encoded_task(dockerfile: str, image_names: List[str], arguments: str = "") -> str:
    """Render the multi-step task YAML for a single Dockerfile build.

    Every image name becomes a ``-t`` tag on one build step, followed by a
    push step for the same images. With no image names only the build runs.
    """
    images = [_qualify_image(name) for name in image_names]

    parts = [f"-t {image}" for image in images]
    parts.append(f"-f {dockerfile}")
    if arguments.strip():
        parts.append(arguments.strip())
    parts.append(".")

    steps: List[dict] = [{"build": " ".join(parts)}]
    if images:
        steps.append({"push": images})

    return yaml.safe_dump(
        {"version": ACR_TASK_YAML_VERSION, "steps": steps},
        sort_keys=False,
        default_flow_style=False,
    )


def build_descriptor(
    name: str,
    registry: RegistryEndpoint,
    definition_path: str,
    context_path: str,
    image_names: Optional[List[str]] = None,
    arguments: str = "",
    values_file_path: Optional[str] = None,
) -> TaskDescriptor:
    """Build a descriptor, choosing the step variant from the definition path.

    Args:
        name: Display name of the task
        registry: Target registry
        definition_path: Dockerfile or task YAML, relative to the build context
        context_path: Build context supplied to the service
        image_names: Images to produce (Dockerfile builds only)
        arguments: Extra `docker build` arguments (Dockerfile builds only)
        values_file_path: Values file for task YAML (task files only)
    """
    if is_step_definition_file(definition_path):
        return TaskDescriptor(
            name=name,
            registry=registry,
            step_kind=StepKind.FILE,
            file_step=FileStep(
                task_file_path=definition_path,
                values_file_path=values_file_path or None,
            ),
            context_path=context_path,
        )

    image_names = image_names or []
    return TaskDescriptor(
        name=name,
        registry=registry,
        step_kind=StepKind.ENCODED,
        encoded_step=EncodedStep(
            content=render_encoded_task(definition_path, image_names, arguments),
            image_names=image_names,
            arguments=arguments,
        ),
        context_path=context_path,
    )
