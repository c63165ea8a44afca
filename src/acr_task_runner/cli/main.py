"""Main CLI for the ACR task runner."""

import asyncio
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..core.config import DEFAULT_CONFIG_PATH, TaskInputs, TaskRunnerConfig, load_config
from ..core.controller import TaskRunController
from ..core.orchestrator import RunObserver
from ..core.run import RunOutcome
from ..errors import ErrorTranslator, TaskRunnerError
from ..health.checker import CheckStatus, HealthChecker
from ..local.docker_builder import DockerBuilder, build_request
from ..utils.file_locator import locate
from ..utils.rich_logging import setup_rich_logging


console = Console()
translator = ErrorTranslator()


class ConsoleObserver(RunObserver):
    """Prints status checks and the run log to the console."""

    def on_status(self, run_id: str, status: str) -> None:
        console.print(f"[dim]Run {run_id}:[/] {status or '[yellow]<empty>[/]'}")

    def on_cancel_requested(self, run_id: str) -> None:
        console.print(f"[yellow]Cancelling run {run_id}...[/]")

    def on_log(self, run_id: str, content: str) -> None:
        console.print("[bold]Downloaded run logs:[/]")
        console.print(content, markup=False, highlight=False)


def _load(ctx) -> TaskRunnerConfig:
    try:
        config = load_config(ctx.obj["config_path"])
    except (ValidationError, OSError) as e:
        console.print(translator.format_for_cli(translator.translate(e)))
        ctx.exit(1)
    if ctx.obj["workspace_set"]:
        config = config.model_copy(update={"workspace": ctx.obj["workspace"]})
    return config


def _print_error(error: Exception) -> None:
    console.print(translator.format_for_cli(translator.translate(error)))


@click.group()
@click.option("--workspace", "-w", default=None, help="Workspace directory")
@click.option("--config", "-c", "config_path", default=None, help="Config file (default: <workspace>/acr-task.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, workspace, config_path, verbose):
    """ACR task runner - run container builds on Azure Container Registry Tasks."""
    ctx.ensure_object(dict)
    workspace_path = Path(workspace or ".")
    ctx.obj["workspace"] = workspace_path
    ctx.obj["workspace_set"] = workspace is not None
    ctx.obj["config_path"] = Path(config_path) if config_path else workspace_path / DEFAULT_CONFIG_PATH
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--file", "-f", "dockerfile_or_yaml", help="Dockerfile or task YAML (patterns allowed)")
@click.option("--name", "-n", "task_name", help="Task display name")
@click.option("--image", "-i", "image_names", multiple=True, help="Image name to build and push (repeatable)")
@click.option("--arguments", "-a", help="Extra docker build arguments")
@click.option("--values-file", "values_file_path", help="Values file for a task YAML")
@click.option("--context", "context_path", help="Build context: directory, git URL or archive URL")
@click.option("--cwd", type=click.Path(file_okay=False, path_type=Path), help="Directory to search for --file")
@click.option("--poll-interval", type=click.FloatRange(min=0), help="Seconds between run status checks")
@click.option("--log-file/--no-log-file", default=False, help="Also write logs under <workspace>/logs")
@click.option("--json-logs", is_flag=True, help="Write console logs as JSON lines")
@click.pass_context
def run(ctx, dockerfile_or_yaml, task_name, image_names, arguments, values_file_path,
        context_path, cwd, poll_interval, log_file, json_logs):
    """Create or update the task, run it and stream the result."""
    config = _load(ctx)

    overrides = {
        "dockerfile_or_yaml": dockerfile_or_yaml,
        "task_name": task_name,
        "image_names": list(image_names) or None,
        "arguments": arguments,
        "values_file_path": values_file_path,
        "context_path": context_path,
        "cwd": cwd,
    }
    merged = {**config.task.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
    config = config.model_copy(update={"task": TaskInputs(**merged)})
    if poll_interval is not None:
        config = config.model_copy(update={
            "polling": config.polling.model_copy(update={"interval": poll_interval}),
        })

    log = setup_rich_logging(
        runner_id=config.task.task_name or "acr-task",
        workspace=config.workspace,
        log_level="DEBUG" if ctx.obj["verbose"] else config.log_level,
        use_file=log_file,
        use_json=json_logs,
    )

    controller = TaskRunController(config, observer=ConsoleObserver(), logger_instance=log)
    result = asyncio.run(controller.run())

    if result.outcome == RunOutcome.SUCCEEDED:
        console.print(f"[green]✓ {result.message}[/]")
    elif result.outcome == RunOutcome.CANCELLED:
        console.print(f"[yellow]{result.message}[/]")
    elif result.error is not None:
        _print_error(result.error)
    else:
        console.print(f"[red]✗ {result.message}[/]")

    ctx.exit(result.exit_code)


@cli.command(name="locate")
@click.argument("pattern")
@click.option("--root", "-r", default=".", type=click.Path(path_type=Path), help="Directory to search")
@click.pass_context
def locate_command(ctx, pattern, root):
    """Print the shallowest file under ROOT matching PATTERN."""
    try:
        found = locate(root, pattern)
    except NotADirectoryError:
        console.print(f"[red]Not a directory: {root}[/]")
        ctx.exit(1)

    if found is None:
        console.print(f"[red]No file matching '{pattern}' under {root}[/]")
        ctx.exit(1)
    click.echo(str(found))


@cli.command()
@click.option("--file", "-f", "dockerfile", help="Dockerfile path or pattern")
@click.option("--context", help="Build context directory")
@click.option("--repository", help="Image repository")
@click.option("--tag", "-t", "tags", multiple=True, help="Image tag (repeatable)")
@click.option("--label", "-l", "labels", multiple=True, help="Label key=value (repeatable)")
@click.option("--arguments", "-a", help="Extra docker build arguments")
@click.pass_context
def build(ctx, dockerfile, context, repository, tags, labels, arguments):
    """Build an image with the local Docker daemon."""
    config = _load(ctx)
    setup_rich_logging(
        runner_id="build",
        workspace=config.workspace,
        log_level="DEBUG" if ctx.obj["verbose"] else config.log_level,
        use_file=False,
    )

    overrides = {
        "dockerfile": dockerfile,
        "context": context,
        "repository": repository,
        "tags": list(tags) or None,
        "labels": list(labels) or None,
        "arguments": arguments,
    }
    local_build = config.local_build.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    try:
        request = build_request(local_build, Path(config.workspace).resolve())
        result = DockerBuilder().build(
            request,
            on_output=lambda line: console.print(line, end="", markup=False, highlight=False),
        )
    except TaskRunnerError as e:
        _print_error(e)
        ctx.exit(1)

    tags_text = ", ".join(result.tags) if result.tags else "untagged"
    console.print(f"[green]✓ Built {result.image_id or 'image'} ({tags_text}) in {result.duration_seconds:.1f}s[/]")


@cli.command()
@click.pass_context
def doctor(ctx):
    """Check configuration, credentials and Docker."""
    config = _load(ctx)
    checker = HealthChecker(config, ctx.obj["config_path"])
    results = checker.run_all_checks()

    table = Table()
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    status_styles = {
        CheckStatus.PASSED: "[green]passed[/]",
        CheckStatus.WARNING: "[yellow]warning[/]",
        CheckStatus.FAILED: "[red]failed[/]",
        CheckStatus.SKIPPED: "[dim]skipped[/]",
    }

    for result in results:
        details = result.message
        if result.fix_action and result.status != CheckStatus.PASSED:
            details += f"\n[dim]{result.fix_action}[/]"
        table.add_row(result.name, status_styles[result.status], details)

    console.print(table)

    if any(r.status == CheckStatus.FAILED for r in results):
        ctx.exit(1)


if __name__ == "__main__":
    cli()
