"""Remote task run orchestration: create, schedule, poll, fetch logs.

RunOrchestrator drives exactly one run through the control plane:

    CREATED -> TASK_RESOLVED -> SCHEDULED -> POLLING -> TERMINAL -> LOGS_FETCHED

Nothing is retried. Any failed call other than cancel aborts the run and
its error propagates unchanged. Interrupts arrive through an injected
``asyncio.Event``; the orchestrator never installs signal handlers itself.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from ..errors import ResponseContractError
from ..integrations.base import ClientResult, RemoteTaskClient
from ..utils.error_handling import log_and_ignore
from ..utils.rich_logging import ContextLogger
from .log_artifact import fetch_log
from .run import RunHandle, RunResult, is_in_flight

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0


class OrchestratorPhase(str, Enum):
    CREATED = "created"
    TASK_RESOLVED = "task_resolved"
    SCHEDULED = "scheduled"
    POLLING = "polling"
    TERMINAL = "terminal"
    LOGS_FETCHED = "logs_fetched"


class RunObserver:
    """Receives progress as it happens. Subclass and override what you need."""

    def on_phase(self, phase: OrchestratorPhase) -> None:
        pass

    def on_status(self, run_id: str, status: str) -> None:
        pass

    def on_cancel_requested(self, run_id: str) -> None:
        pass

    def on_log(self, run_id: str, content: str) -> None:
        pass


def _interrupted(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _unwrap(result: ClientResult):
    if not result.ok:
        raise result.error
    return result.value


class RunOrchestrator:
    """State machine for one remote task run.

    Collaborator of the entry controller. Receives a client already bound to
    the task descriptor; owns the run handle for the duration of ``run()``.
    """

    def __init__(
        self,
        client: RemoteTaskClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        observer: Optional[RunObserver] = None,
        logger_instance=None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.observer = observer or RunObserver()
        self._log = logger_instance or ContextLogger(logger, "acr-task")

        self.phase = OrchestratorPhase.CREATED
        self.handle: Optional[RunHandle] = None
        self.status_checks = 0
        self._cancel_requested = False
        self._cancel_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunResult:
        """Drive the run to a terminal state and return the mapped result.

        Args:
            cancel_event: Set from outside to request cancellation of the
                remote run. Polling continues until the service reports a
                terminal state. If it is set before the run is scheduled,
                no run is started and the result is cancelled.

        Raises:
            RemoteTaskError: a control-plane call failed
            ResponseContractError: a required id or link was empty
        """
        try:
            if _interrupted(cancel_event):
                return self._stop_before_scheduling()
            await self._resolve_task()
            task_id = await self._create_or_update_task()
            if _interrupted(cancel_event):
                return self._stop_before_scheduling()
            run_id = await self._start_run(task_id)
            self.handle = RunHandle(task_id=task_id, run_id=run_id)

            status = await self._poll_until_terminal(run_id, cancel_event)
            logs = await self._fetch_logs(run_id)
        finally:
            await self._drain_cancellations()

        return RunResult.from_status(run_id, status, logs)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _stop_before_scheduling(self) -> RunResult:
        self._log.warning(f"Interrupt received during {self.phase.value}, no run was scheduled")
        return RunResult.not_scheduled()

    def _transition(self, phase: OrchestratorPhase) -> None:
        self.phase = phase
        self._log.phase_change(phase.value)
        self.observer.on_phase(phase)

    async def _resolve_task(self) -> None:
        exists = _unwrap(await self.client.fetch_task())
        if exists:
            self._log.info("Task exists, it will be updated")
        else:
            self._log.info("Task not found, it will be created")
        self._transition(OrchestratorPhase.TASK_RESOLVED)

    async def _create_or_update_task(self) -> str:
        task_id = _unwrap(await self.client.create_or_update_task())
        if not task_id:
            raise ResponseContractError("taskId")
        self._log.debug(f"Task id: {task_id}")
        self._transition(OrchestratorPhase.SCHEDULED)
        return task_id

    async def _start_run(self, task_id: str) -> str:
        run_id = _unwrap(await self.client.start_run(task_id))
        if not run_id:
            raise ResponseContractError("runId")
        self._log.set_run_context(run_id=run_id)
        self._log.info(f"Scheduled run {run_id}")
        self._transition(OrchestratorPhase.POLLING)
        return run_id

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_until_terminal(self, run_id: str, cancel_event: Optional[asyncio.Event]) -> str:
        """Check status until it leaves the in-flight set. No overall deadline."""
        while True:
            status = _unwrap(await self.client.get_run_status(run_id))
            self.status_checks += 1
            status = status or ""

            self._log.run_status(run_id, status or "<empty>")
            self.observer.on_status(run_id, status)

            if not is_in_flight(status):
                self._transition(OrchestratorPhase.TERMINAL)
                return status

            await self._wait_for_next_poll(run_id, cancel_event)

    async def _wait_for_next_poll(self, run_id: str, cancel_event: Optional[asyncio.Event]) -> None:
        """Sleep one interval, waking early if an interrupt arrives.

        An interrupt requests cancellation and returns straight away so the
        next status check observes the service's reaction.
        """
        if cancel_event is None or self._cancel_requested:
            await asyncio.sleep(self.poll_interval)
            return

        if not cancel_event.is_set():
            sleeper = asyncio.create_task(asyncio.sleep(self.poll_interval))
            interrupt = asyncio.create_task(cancel_event.wait())
            try:
                await asyncio.wait([sleeper, interrupt], return_when=asyncio.FIRST_COMPLETED)
            finally:
                sleeper.cancel()
                interrupt.cancel()

        if cancel_event.is_set():
            self._request_cancel(run_id)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _request_cancel(self, run_id: str) -> None:
        """Fire-and-forget cancel; at most once per run."""
        if self._cancel_requested:
            return
        self._cancel_requested = True
        self._log.warning(f"Interrupt received, cancelling run {run_id}")
        self.observer.on_cancel_requested(run_id)

        task = asyncio.create_task(self._cancel_run(run_id))
        self._cancel_tasks.add(task)
        task.add_done_callback(self._cancel_tasks.discard)

    async def _cancel_run(self, run_id: str) -> None:
        try:
            result = await self.client.cancel_run(run_id)
        except Exception as e:
            log_and_ignore(e, f"Cancel request for run {run_id} raised", logger_instance=self._log)
            return

        if not result.ok:
            log_and_ignore(result.error, "Failed to cancel run", logger_instance=self._log)
        else:
            self._log.info(f"Cancellation accepted for run {run_id}")

    async def _drain_cancellations(self) -> None:
        if self._cancel_tasks:
            await asyncio.gather(*list(self._cancel_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    async def _fetch_logs(self, run_id: str) -> str:
        log_link = _unwrap(await self.client.get_log_link(run_id))
        if not log_link:
            raise ResponseContractError("logLink")

        content = await fetch_log(self.client, log_link)
        self.observer.on_log(run_id, content)
        self._transition(OrchestratorPhase.LOGS_FETCHED)
        return content
