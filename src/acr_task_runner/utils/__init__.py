"""Shared utility functions for the task runner."""

from .error_handling import best_effort, handle_filesystem_errors, log_and_ignore
from .file_locator import find_build_file, find_matching_files, is_pattern, locate
from .rich_logging import ContextLogger, setup_rich_logging
from .subprocess_utils import check_command_exists

__all__ = [
    "ContextLogger",
    "best_effort",
    "check_command_exists",
    "find_build_file",
    "find_matching_files",
    "handle_filesystem_errors",
    "is_pattern",
    "locate",
    "log_and_ignore",
    "setup_rich_logging",
]
