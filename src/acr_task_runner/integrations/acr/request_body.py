"""ARM request payloads for registry tasks and runs."""

import base64
from typing import Any, Dict

from ...core.task_descriptor import StepKind, TaskDescriptor

DEFAULT_PLATFORM_OS = "Linux"
DEFAULT_AGENT_CPU = 2


def _encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def step_body(descriptor: TaskDescriptor) -> Dict[str, Any]:
    """The ``step`` property for the descriptor's step variant."""
    if descriptor.step_kind == StepKind.FILE:
        step = descriptor.file_step
        body: Dict[str, Any] = {
            "type": StepKind.FILE.value,
            "taskFilePath": step.task_file_path,
            "contextPath": descriptor.context_path,
        }
        if step.values_file_path:
            body["valuesFilePath"] = step.values_file_path
        return body

    step = descriptor.encoded_step
    return {
        "type": StepKind.ENCODED.value,
        "encodedTaskContent": _encode(step.content),
        "contextPath": descriptor.context_path,
    }


def task_body(descriptor: TaskDescriptor) -> Dict[str, Any]:
    """Body for ``PUT .../registries/{registry}/tasks/{task}``."""
    return {
        "location": descriptor.registry.location,
        "tags": {"displayName": descriptor.name},
        "properties": {
            "status": "Enabled",
            "platform": {"os": DEFAULT_PLATFORM_OS},
            "agentConfiguration": {"cpu": DEFAULT_AGENT_CPU},
            "step": step_body(descriptor),
        },
    }


def run_request_body(task_id: str) -> Dict[str, Any]:
    """Body for ``POST .../registries/{registry}/scheduleRun``."""
    return {"type": "TaskRunRequest", "taskId": task_id}
