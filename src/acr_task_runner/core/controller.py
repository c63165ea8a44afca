"""Entry controller: resolve inputs, drive one run, map it to an outcome."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Callable, Optional

from ..errors import InputError, TaskRunnerError
from ..integrations.acr import AcrTaskClient, credential_from_config
from ..utils.file_locator import find_build_file, is_pattern
from ..utils.rich_logging import ContextLogger
from .config import TaskRunnerConfig
from .orchestrator import RunObserver, RunOrchestrator
from .run import RunResult
from .source_context import is_remote_context, resolve_context
from .task_descriptor import RegistryEndpoint, TaskDescriptor, build_descriptor

logger = logging.getLogger(__name__)

DEFAULT_TASK_NAME = "acr-task-run"

ClientFactory = Callable[[TaskDescriptor], AcrTaskClient]


def registry_endpoint(config: TaskRunnerConfig) -> RegistryEndpoint:
    registry = config.registry
    if not registry.is_complete:
        missing = ", ".join(f"registry.{field}" for field in registry.missing_fields())
        raise InputError(f"Registry settings are incomplete, missing: {missing}")
    return RegistryEndpoint(
        name=registry.name,
        subscription_id=registry.subscription_id,
        resource_group=registry.resource_group,
        location=registry.location,
        login_server=registry.login_server,
    )


def resolve_definition_path(definition: str, cwd: Path, context: str) -> str:
    """Locate the Dockerfile or task YAML and express it relative to the context.

    Patterns are searched under ``cwd``. For a local context the result is
    made relative to it so the service finds it inside the uploaded archive.
    """
    resolved = Path(find_build_file(definition, cwd)) if is_pattern(definition) else Path(definition)

    if is_remote_context(context):
        return resolved.as_posix()

    context_dir = Path(context)
    if not context_dir.is_absolute():
        context_dir = cwd / context_dir
    if not resolved.is_absolute():
        resolved = cwd / resolved

    try:
        return Path(os.path.relpath(resolved, context_dir)).as_posix()
    except ValueError:
        # Different drives on Windows
        return resolved.as_posix()


class TaskRunController:
    """Runs one remote task from configuration.

    Every failure, including unexpected ones, is caught here once and turned
    into a failed :class:`RunResult`; nothing escapes ``run()``.
    """

    def __init__(
        self,
        config: TaskRunnerConfig,
        *,
        client_factory: Optional[ClientFactory] = None,
        observer: Optional[RunObserver] = None,
        logger_instance: Optional[ContextLogger] = None,
    ):
        self.config = config
        self.client_factory = client_factory or self._default_client
        self.observer = observer
        self._log = logger_instance or ContextLogger(logger, "acr-task")
        self.descriptor: Optional[TaskDescriptor] = None
        self.orchestrator: Optional[RunOrchestrator] = None
        self.cwd: Optional[Path] = None

    def _default_client(self, descriptor: TaskDescriptor) -> AcrTaskClient:
        auth = self.config.auth
        return AcrTaskClient(
            credential_from_config(auth),
            descriptor,
            arm_endpoint=auth.arm_endpoint,
            api_version=auth.api_version,
            timeout=self.config.transport.timeout,
            download_timeout=self.config.transport.download_timeout,
        )

    def prepare_descriptor(self) -> TaskDescriptor:
        """Build the task descriptor. Raises InputError before any remote call."""
        inputs = self.config.task
        if not inputs.dockerfile_or_yaml:
            raise InputError("Path to the Dockerfile or task YAML is not set")

        registry = registry_endpoint(self.config)
        cwd = Path(inputs.cwd or self.config.workspace).resolve()
        self.cwd = cwd
        context = inputs.context_path or str(cwd)
        if not is_remote_context(context) and not Path(context).is_absolute():
            context = str(cwd / context)
        definition = resolve_definition_path(inputs.dockerfile_or_yaml, cwd, context)

        descriptor = build_descriptor(
            name=inputs.task_name or DEFAULT_TASK_NAME,
            registry=registry,
            definition_path=definition,
            context_path=context,
            image_names=inputs.image_names,
            arguments=inputs.arguments,
            values_file_path=inputs.values_file_path,
        )
        self._log.set_run_context(task_name=descriptor.resource_name)
        self._log.info(f"Task {descriptor.resource_name} ({descriptor.step_kind.value}) using {definition}")
        return descriptor

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunResult:
        """Run the task to completion and return its result.

        When no event is passed, SIGINT is bound to a fresh one for the
        duration of the run.
        """
        install_handler = cancel_event is None
        cancel_event = cancel_event or asyncio.Event()
        if install_handler:
            self._install_interrupt_handler(cancel_event)

        client: Optional[AcrTaskClient] = None
        try:
            descriptor = self.prepare_descriptor()
            client = self.client_factory(descriptor)

            # An interrupt here skips the upload; the orchestrator then schedules nothing
            if not is_remote_context(descriptor.context_path) and not cancel_event.is_set():
                context = await resolve_context(client, descriptor.context_path, self.cwd)
                descriptor = descriptor.model_copy(update={"context_path": context})
                client.descriptor = descriptor
            self.descriptor = descriptor

            self.orchestrator = RunOrchestrator(
                client,
                poll_interval=self.config.polling.interval,
                observer=self.observer,
                logger_instance=self._log,
            )
            result = await self.orchestrator.run(cancel_event)
        except TaskRunnerError as e:
            self._log.error(f"Task run failed: {e}")
            result = RunResult.from_error(e, run_id=self._current_run_id())
        except Exception as e:
            self._log.exception(f"Unexpected error during task run: {e}")
            result = RunResult.from_error(e, run_id=self._current_run_id())
        finally:
            if install_handler:
                self._remove_interrupt_handler()
            if client is not None:
                await client.aclose()

        self._log.run_finished(result.outcome.value, result.message)
        return result

    def _current_run_id(self) -> Optional[str]:
        if self.orchestrator and self.orchestrator.handle:
            return self.orchestrator.handle.run_id
        return None

    def _install_interrupt_handler(self, cancel_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except (NotImplementedError, RuntimeError) as e:
            # No signal support on this platform or not on the main thread
            self._log.debug(f"Interrupt handler not installed: {e}")

    def _remove_interrupt_handler(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
