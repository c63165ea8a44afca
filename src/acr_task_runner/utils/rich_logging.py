"""Rich logging with run context and better formatting."""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class RunLogFormatter(logging.Formatter):
    """Custom formatter with run context."""

    def __init__(self, runner_id: str, use_colors: bool = True):
        super().__init__()
        self.runner_id = runner_id
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        run_context = ""
        if hasattr(record, "run_id"):
            run_context = f"[run {record.run_id}] "
        elif hasattr(record, "task_name"):
            run_context = f"[{record.task_name}] "

        phase_context = ""
        if hasattr(record, "phase"):
            phase_context = f"[{record.phase}] "

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",      # Cyan
                "INFO": "\033[32m",       # Green
                "WARNING": "\033[33m",    # Yellow
                "ERROR": "\033[31m",      # Red
                "CRITICAL": "\033[35m",   # Magenta
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        return (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.runner_id}] {phase_context}{run_context}{record.getMessage()}"
        )


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, with run context when present."""

    def __init__(self, runner_id: str):
        super().__init__()
        self.runner_id = runner_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "runner": self.runner_id,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        for key in ("task_name", "run_id", "phase"):
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds run context to all log messages."""

    def __init__(self, logger: logging.Logger, runner_id: str):
        super().__init__(logger, {})
        self.runner_id = runner_id
        self.current_task_name: Optional[str] = None
        self.current_run_id: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_run_context(
        self,
        task_name: Optional[str] = None,
        run_id: Optional[str] = None,
        phase: Optional[str] = None,
    ):
        """Set current run context for logging."""
        if task_name:
            self.current_task_name = task_name
        if run_id:
            self.current_run_id = run_id
        if phase is not None:  # Allow clearing phase with None
            self.current_phase = phase

    def clear_context(self):
        """Clear run context."""
        self.current_task_name = None
        self.current_run_id = None
        self.current_phase = None

    def process(self, msg, kwargs):
        """Add context to log record."""
        extra = kwargs.get("extra", {})

        if self.current_task_name:
            extra["task_name"] = self.current_task_name
        if self.current_run_id:
            extra["run_id"] = self.current_run_id
        if self.current_phase:
            extra["phase"] = self.current_phase

        kwargs["extra"] = extra
        return msg, kwargs

    def phase_change(self, phase: str):
        """Log orchestrator phase change."""
        self.set_run_context(phase=phase)
        self.info(f"Phase: {phase}")

    def run_status(self, run_id: str, status: str):
        """Log one status observation."""
        self.set_run_context(run_id=run_id)
        self.info(f"Run {run_id} status: {status}")

    def run_finished(self, outcome: str, message: str):
        """Record the final outcome at DEBUG and reset context.

        The user-facing outcome line is printed by the CLI.
        """
        self.debug(f"Run finished ({outcome}): {message}")
        self.clear_context()


def setup_rich_logging(
    runner_id: str,
    workspace: Path,
    log_level: str = "INFO",
    use_file: bool = True,
    use_json: bool = False,
) -> ContextLogger:
    """
    Setup rich logging with better formatting.

    Handlers are attached to the ``acr_task_runner`` package logger so every
    module logger created with ``logging.getLogger(__name__)`` shares them.

    Args:
        runner_id: Identifier shown on every line (usually the task name)
        workspace: Workspace path; log files go to ``<workspace>/logs``
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_file: Write to log file
        use_json: Use JSON structured logging

    Returns:
        ContextLogger instance
    """
    package_logger = logging.getLogger("acr_task_runner")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in package_logger.handlers[:]:
        handler.close()
        package_logger.removeHandler(handler)

    if use_json:
        formatter = JsonLogFormatter(runner_id)
    else:
        use_colors = sys.stderr.isatty() if hasattr(sys.stderr, 'isatty') else False
        formatter = RunLogFormatter(runner_id, use_colors=use_colors)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if use_file:
        log_dir = workspace / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        # Plain formatter for files (no ANSI codes)
        plain_formatter = RunLogFormatter(runner_id, use_colors=False)

        file_handler = logging.FileHandler(log_dir / f"{runner_id}-{os.getpid()}.log")
        file_handler.setFormatter(plain_formatter)
        package_logger.addHandler(file_handler)

    return ContextLogger(package_logger.getChild("run"), runner_id)
