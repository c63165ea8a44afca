"""Tests for RunOrchestrator: ordering, polling, cancellation and logs."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from acr_task_runner.core.orchestrator import OrchestratorPhase, RunObserver, RunOrchestrator
from acr_task_runner.core.run import RunOutcome
from acr_task_runner.errors import RemoteTaskError, ResponseContractError
from acr_task_runner.integrations.base import ClientResult


class RecordingObserver(RunObserver):
    def __init__(self):
        self.phases = []
        self.statuses = []
        self.logs = []
        self.cancel_requests = []

    def on_phase(self, phase):
        self.phases.append(phase)

    def on_status(self, run_id, status):
        self.statuses.append((run_id, status))

    def on_cancel_requested(self, run_id):
        self.cancel_requests.append(run_id)

    def on_log(self, run_id, content):
        self.logs.append(content)


def _orchestrator(client, observer=None, interval=0):
    return RunOrchestrator(
        client,
        poll_interval=interval,
        observer=observer or RecordingObserver(),
        logger_instance=MagicMock(),
    )


def _interrupt_during_first_check(statuses, cancel_event):
    """get_run_status fake that sets the interrupt while the first check is in flight."""
    remaining = iter(statuses)

    async def get_run_status(run_id):
        cancel_event.set()
        return ClientResult.success(next(remaining))

    return AsyncMock(side_effect=get_run_status)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_queued_running_succeeded_polls_three_times(self, make_client):
        """Exactly three status checks, then success with logs surfaced."""
        client = make_client(["Queued", "Running", "Succeeded"])
        observer = RecordingObserver()

        result = await _orchestrator(client, observer).run()

        assert client.get_run_status.await_count == 3
        assert result.outcome == RunOutcome.SUCCEEDED
        assert result.exit_code == 0
        assert result.run_id == "cb1"
        assert "Step 1/2" in result.logs
        assert observer.statuses == [("cb1", "Queued"), ("cb1", "Running"), ("cb1", "Succeeded")]
        assert observer.logs == [result.logs]
        client.cancel_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_phases_advance_in_order(self, make_client):
        client = make_client(["Succeeded"])
        observer = RecordingObserver()
        orchestrator = _orchestrator(client, observer)

        await orchestrator.run()

        assert observer.phases == [
            OrchestratorPhase.TASK_RESOLVED,
            OrchestratorPhase.SCHEDULED,
            OrchestratorPhase.POLLING,
            OrchestratorPhase.TERMINAL,
            OrchestratorPhase.LOGS_FETCHED,
        ]
        assert orchestrator.phase == OrchestratorPhase.LOGS_FETCHED

    @pytest.mark.asyncio
    async def test_run_is_started_with_returned_task_id(self, make_client):
        client = make_client(["Succeeded"], task_id="task-xyz")

        await _orchestrator(client).run()

        client.start_run.assert_awaited_once_with("task-xyz")
        client.get_run_status.assert_awaited_with("cb1")
        client.get_log_link.assert_awaited_once_with("cb1")

    @pytest.mark.asyncio
    async def test_existing_task_is_updated(self, make_client):
        """A task that already exists goes through the same create-or-update call."""
        client = make_client(["Succeeded"])
        client.fetch_task = AsyncMock(return_value=ClientResult.success(True))

        result = await _orchestrator(client).run()

        client.create_or_update_task.assert_awaited_once()
        assert result.outcome == RunOutcome.SUCCEEDED


class TestTerminalMapping:
    @pytest.mark.asyncio
    async def test_failed_still_fetches_logs(self, make_client):
        client = make_client(["Running", "Failed"], log_content="error: build step failed\n")

        result = await _orchestrator(client).run()

        client.get_log_link.assert_awaited_once()
        assert result.outcome == RunOutcome.FAILED
        assert result.logs == "error: build step failed\n"
        assert "Failed" in result.message

    @pytest.mark.asyncio
    async def test_unknown_status_is_failure_with_raw_value(self, make_client):
        client = make_client(["Timeout"])

        result = await _orchestrator(client).run()

        assert client.get_run_status.await_count == 1
        assert result.outcome == RunOutcome.FAILED
        assert result.status == "Timeout"
        assert "Timeout" in result.message

    @pytest.mark.asyncio
    async def test_canceled_spelling_maps_to_cancelled(self, make_client):
        client = make_client(["Canceled"])

        result = await _orchestrator(client).run()

        assert result.outcome == RunOutcome.CANCELLED
        assert result.exit_code == 130

    @pytest.mark.asyncio
    async def test_empty_status_is_terminal_failure(self, make_client):
        client = make_client([None])

        result = await _orchestrator(client).run()

        assert client.get_run_status.await_count == 1
        assert result.outcome == RunOutcome.FAILED


class TestCancellation:
    @pytest.mark.asyncio
    async def test_interrupt_between_checks_issues_cancel(self, make_client):
        """Running, interrupt, Cancelled: cancel is sent and the outcome is cancelled."""
        client = make_client([])
        cancel_event = asyncio.Event()
        statuses = iter(["Running", "Cancelled"])

        async def get_run_status(run_id):
            status = next(statuses)
            if status == "Running":
                cancel_event.set()
            return ClientResult.success(status)

        client.get_run_status = AsyncMock(side_effect=get_run_status)
        observer = RecordingObserver()

        result = await _orchestrator(client, observer).run(cancel_event)

        client.cancel_run.assert_awaited_once_with("cb1")
        assert observer.cancel_requests == ["cb1"]
        assert result.outcome == RunOutcome.CANCELLED
        client.get_log_link.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_interrupt_wakes_long_wait(self, make_client):
        """An interrupt during a long poll interval is acted on without waiting it out."""
        client = make_client(["Running", "Cancelled"])
        cancel_event = asyncio.Event()
        orchestrator = _orchestrator(client, interval=3600)

        async def interrupt_soon():
            await asyncio.sleep(0.05)
            cancel_event.set()

        interrupter = asyncio.create_task(interrupt_soon())
        result = await asyncio.wait_for(orchestrator.run(cancel_event), timeout=5)
        await interrupter

        client.cancel_run.assert_awaited_once_with("cb1")
        assert result.outcome == RunOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_is_sent_once_while_run_keeps_going(self, make_client):
        client = make_client([])
        cancel_event = asyncio.Event()
        client.get_run_status = _interrupt_during_first_check(
            ["Running", "Running", "Running", "Cancelled"], cancel_event,
        )

        result = await _orchestrator(client).run(cancel_event)

        assert client.get_run_status.await_count == 4
        assert client.cancel_run.await_count == 1
        assert result.outcome == RunOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_interrupt_before_start_schedules_nothing(self, make_client):
        """Ctrl+C before the run exists: no run is started, nothing to cancel."""
        client = make_client(["Queued", "Cancelled"])
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await _orchestrator(client).run(cancel_event)

        client.start_run.assert_not_awaited()
        client.get_run_status.assert_not_awaited()
        client.cancel_run.assert_not_awaited()
        client.get_log_link.assert_not_awaited()
        assert result.outcome == RunOutcome.CANCELLED
        assert result.exit_code == 130
        assert result.run_id is None

    @pytest.mark.asyncio
    async def test_interrupt_while_task_is_created_schedules_nothing(self, make_client):
        client = make_client(["Queued"])
        cancel_event = asyncio.Event()

        async def create_or_update_task():
            cancel_event.set()
            return ClientResult.success("/subscriptions/sub-123/tasks/buildtask")

        client.create_or_update_task = AsyncMock(side_effect=create_or_update_task)

        result = await _orchestrator(client).run(cancel_event)

        client.create_or_update_task.assert_awaited_once()
        client.start_run.assert_not_awaited()
        assert result.outcome == RunOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_failure_does_not_change_outcome(self, make_client):
        client = make_client([])
        client.cancel_run = AsyncMock(return_value=ClientResult.failure(
            RemoteTaskError("Cancel run", "run cb1", "Conflict", 409)
        ))
        cancel_event = asyncio.Event()
        client.get_run_status = _interrupt_during_first_check(["Running", "Succeeded"], cancel_event)
        logger = MagicMock()
        orchestrator = RunOrchestrator(client, poll_interval=0, logger_instance=logger)

        result = await orchestrator.run(cancel_event)

        assert result.outcome == RunOutcome.SUCCEEDED
        client.cancel_run.assert_awaited_once()
        warnings = [str(call.args[1]) for call in logger.log.call_args_list]
        assert any("Conflict" in message for message in warnings)

    @pytest.mark.asyncio
    async def test_cancel_raising_is_logged_not_propagated(self, make_client):
        client = make_client([])
        client.cancel_run = AsyncMock(side_effect=RuntimeError("socket closed"))
        cancel_event = asyncio.Event()
        client.get_run_status = _interrupt_during_first_check(["Running", "Cancelled"], cancel_event)

        result = await _orchestrator(client).run(cancel_event)

        assert result.outcome == RunOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_no_cancel_without_interrupt(self, make_client):
        client = make_client(["Queued", "Started", "Running", "Succeeded"])

        await _orchestrator(client).run(asyncio.Event())

        client.cancel_run.assert_not_called()


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_status_transport_error_aborts_without_cancel_or_logs(self, make_client):
        error = RemoteTaskError("Fetch run", "run cb1", "connection reset")
        client = make_client(["Running", ClientResult.failure(error)])

        with pytest.raises(RemoteTaskError) as exc_info:
            await _orchestrator(client).run(asyncio.Event())

        assert exc_info.value is error
        client.cancel_run.assert_not_called()
        client.get_log_link.assert_not_called()
        client.download.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_task_error_is_raised_unmodified(self, make_client):
        error = RemoteTaskError("Fetch task", "task buildtask", "Forbidden", 403)
        client = make_client([])
        client.fetch_task = AsyncMock(return_value=ClientResult.failure(error))

        with pytest.raises(RemoteTaskError) as exc_info:
            await _orchestrator(client).run()

        assert exc_info.value is error
        client.create_or_update_task.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("task_id", [None, ""])
    async def test_empty_task_id_never_starts_run(self, make_client, task_id):
        client = make_client([], task_id=task_id)

        with pytest.raises(ResponseContractError, match="Could not extract taskId from response"):
            await _orchestrator(client).run()

        client.start_run.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("run_id", [None, ""])
    async def test_empty_run_id_never_polls(self, make_client, run_id):
        client = make_client([], run_id=run_id)

        with pytest.raises(ResponseContractError, match="runId"):
            await _orchestrator(client).run(asyncio.Event())

        client.get_run_status.assert_not_called()
        client.cancel_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_log_link_is_fatal(self, make_client):
        client = make_client(["Succeeded"], log_link="")

        with pytest.raises(ResponseContractError, match="Could not extract logLink from response"):
            await _orchestrator(client).run()

        client.download.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_remote_call_is_retried(self, make_client):
        error = RemoteTaskError("Schedule task run", "task t", "Internal error", 500)
        client = make_client([])
        client.start_run = AsyncMock(return_value=ClientResult.failure(error))

        with pytest.raises(RemoteTaskError):
            await _orchestrator(client).run()

        assert client.start_run.await_count == 1
