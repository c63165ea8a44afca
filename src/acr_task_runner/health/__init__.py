"""Health check system for the task runner."""

from .checker import HealthChecker, CheckResult, CheckStatus

__all__ = ["HealthChecker", "CheckResult", "CheckStatus"]
