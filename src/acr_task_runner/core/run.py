"""Run identifiers, remote run states and the final result."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RunState(str, Enum):
    """Run status values reported by the service."""
    QUEUED = "Queued"
    STARTED = "Started"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


IN_FLIGHT_STATES = frozenset({RunState.QUEUED, RunState.STARTED, RunState.RUNNING})

# The ARM API spells it "Canceled"
_STATE_ALIASES = {"Canceled": RunState.CANCELLED}


def parse_run_state(status: str) -> Optional[RunState]:
    """Map a raw status string to a known state, or None when unrecognized."""
    if status in _STATE_ALIASES:
        return _STATE_ALIASES[status]
    try:
        return RunState(status)
    except ValueError:
        return None


def is_in_flight(status: str) -> bool:
    """True while the run has not reached a terminal state."""
    return parse_run_state(status) in IN_FLIGHT_STATES


class RunOutcome(str, Enum):
    """Externally visible outcome of one invocation."""
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    RunOutcome.SUCCEEDED: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.CANCELLED: 130,
}


def outcome_for_status(status: str) -> RunOutcome:
    """Succeeded and Cancelled map through; every other terminal value fails."""
    state = parse_run_state(status)
    if state == RunState.SUCCEEDED:
        return RunOutcome.SUCCEEDED
    if state == RunState.CANCELLED:
        return RunOutcome.CANCELLED
    return RunOutcome.FAILED


@dataclass
class RunHandle:
    """Identifiers of one scheduled execution."""
    task_id: str
    run_id: Optional[str] = None


@dataclass
class RunResult:
    """Final result of an orchestrated run."""
    outcome: RunOutcome
    message: str
    run_id: Optional[str] = None
    status: Optional[str] = None
    logs: Optional[str] = None
    # Set when the run ended on an exception rather than a terminal status
    error: Optional[Exception] = None

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @classmethod
    def from_status(cls, run_id: str, status: str, logs: Optional[str] = None) -> "RunResult":
        outcome = outcome_for_status(status)
        if outcome == RunOutcome.SUCCEEDED:
            message = f"Task run {run_id} succeeded"
        elif outcome == RunOutcome.CANCELLED:
            message = f"Task run {run_id} was cancelled"
        else:
            message = f"Task run {run_id} failed with status: {status}"
        return cls(outcome=outcome, message=message, run_id=run_id, status=status, logs=logs)

    @classmethod
    def not_scheduled(cls) -> "RunResult":
        """Interrupted before a run existed; nothing to cancel remotely."""
        return cls(outcome=RunOutcome.CANCELLED, message="Interrupted before a run was scheduled")

    @classmethod
    def from_error(cls, error: Exception, run_id: Optional[str] = None) -> "RunResult":
        return cls(outcome=RunOutcome.FAILED, message=str(error), run_id=run_id, error=error)
