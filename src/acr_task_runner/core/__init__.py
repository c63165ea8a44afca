"""Core models, configuration and run orchestration."""

from .config import TaskRunnerConfig, load_config
from .orchestrator import OrchestratorPhase, RunObserver, RunOrchestrator
from .run import RunHandle, RunOutcome, RunResult, RunState
from .task_descriptor import RegistryEndpoint, StepKind, TaskDescriptor, build_descriptor

__all__ = [
    "TaskRunnerConfig",
    "load_config",
    "OrchestratorPhase",
    "RunObserver",
    "RunOrchestrator",
    "RunHandle",
    "RunOutcome",
    "RunResult",
    "RunState",
    "RegistryEndpoint",
    "StepKind",
    "TaskDescriptor",
    "build_descriptor",
]
