"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    documentation: Optional[str] = None
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        # Build definition lookup
        r"BuildFileNotFoundError|No build file matching": {
            "title": "Build definition not found",
            "explanation": "No Dockerfile or task YAML matched the given path or pattern in the working directory.",
            "actions": [
                "Check the --file value (patterns may use * and ?)",
                "Check the --cwd value points at your source tree",
                "Preview the match: acr-task locate '<pattern>' --root <dir>",
            ],
        },

        # ARM auth errors
        r"HTTP 401|HTTP 403|AuthenticationFailed|AuthorizationFailed|InvalidAuthenticationToken|access token|CredentialError": {
            "title": "Azure authentication failed",
            "explanation": "The control plane rejected the access token, or the identity lacks access to the registry.",
            "actions": [
                "Refresh the token: az account get-access-token",
                "Set auth.access_token or ACR_TASK_AUTH__ACCESS_TOKEN",
                "Grant the identity Contributor on the registry",
            ],
            "documentation": "README.md#authentication",
        },

        # Missing registry / task / run
        r"HTTP 404|ResourceNotFound|ResourceGroupNotFound": {
            "title": "Registry resource not found",
            "explanation": "The subscription, resource group or registry in the configuration does not exist.",
            "actions": [
                "Verify registry.subscription_id, registry.resource_group and registry.name",
                "Run health check: acr-task doctor",
            ],
        },

        # Throttling
        r"HTTP 429|rate.*limit|too many requests": {
            "title": "Azure API rate limit exceeded",
            "explanation": "Azure Resource Manager throttled the request. Limits reset within minutes.",
            "actions": [
                "Wait a few minutes and try again",
                "Increase polling.interval in the configuration",
            ],
        },

        # Missing response fields
        r"Could not extract": {
            "title": "Unexpected response from Azure",
            "explanation": "The control plane accepted the request but did not return an expected identifier.",
            "actions": [
                "Retry the run",
                "Check the Azure status page for Container Registry incidents",
            ],
            "documentation": "README.md#troubleshooting",
        },

        # Network errors
        r"connect.*error|connection.*refused|connection.*timeout|timed out|network.*unreachable": {
            "title": "Cannot connect to Azure",
            "explanation": "Unable to reach Azure Resource Manager. This could be a network issue or service outage.",
            "actions": [
                "Check your internet connection",
                "Verify auth.arm_endpoint in the configuration",
                "Try again in a few minutes",
            ],
        },

        # Config errors
        r"config.*not.*found|no such file.*config|InputError": {
            "title": "Configuration incomplete",
            "explanation": "A required setting or input was not provided.",
            "actions": [
                "Create acr-task.yaml in the workspace",
                "Or pass the missing value on the command line",
            ],
            "documentation": "README.md#configuration",
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_str = str(error)
        error_type = type(error).__name__
        full_error = f"{error_type}: {error_str}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    documentation=translation.get("documentation"),
                    show_technical=False,
                )

        # Fallback for unknown errors
        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=[
                "Run health check: acr-task doctor",
                "Re-run with --verbose and check the logs",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.documentation:
            output += f"\n[dim]Learn more: {friendly_error.documentation}[/]"

        if friendly_error.show_technical:
            output += f"\n\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
